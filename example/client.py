#!/usr/bin/env python

import asyncio

from wsconnector import Client


async def hello():
    client = Client(env_proxy=True, timeout=10)
    async with await client.connect("ws://localhost:8765") as websocket:
        name = input("What's your name? ")

        await websocket.send(name)
        print(f">>> {name}")

        greeting = await websocket.recv()
        print(f"<<< {greeting}")

if __name__ == "__main__":
    asyncio.run(hello())
