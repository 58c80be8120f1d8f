import pathlib
import re
import sys

import setuptools

root_dir = pathlib.Path(__file__).parent

if sys.version_info[:2] < (3, 10):
    raise Exception("wsconnector requires Python >= 3.10.")

description = "Asynchronous WebSocket client connector for asyncio"

# Extract version from the version module without importing the package.
version_module = (root_dir / "src" / "wsconnector" / "version.py").read_text()
version = re.search('tag = version = "(.*)"', version_module).group(1)

setuptools.setup(
    name="wsconnector",
    version=version,
    description=description,
    long_description=description,
    long_description_content_type="text/plain",
    license="BSD-3-Clause",
    package_dir={"": "src"},
    packages=["wsconnector"],
    package_data={"wsconnector": ["py.typed"]},
    include_package_data=True,
    zip_safe=False,
    python_requires=">=3.10",
    extras_require={
        "test": [
            "coverage",
            "mitmproxy",
        ],
    },
    entry_points={
        "console_scripts": [
            "wsconnector = wsconnector.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Framework :: AsyncIO",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
)
