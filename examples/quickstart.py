"""Quickstart — build an adapter from a dict, write, read and inspect a file.

Demonstrates:
- Creating an adapter for the local transport with ``create_adapter``
- Writing and reading a file
- Reading file metadata
"""

from __future__ import annotations

import tempfile

from remote_adapter import create_adapter

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        config = {
            "root_path": "data",
            "client": {"transport": "local", "options": {"root": tmp}},
        }

        with create_adapter(config) as adapter:
            # Parent directories are created on demand
            adapter.write("greetings/hello.txt", "Hello, world!")
            print(f"File exists: {adapter.file_exists('greetings/hello.txt')}")

            content = adapter.read("greetings/hello.txt")
            print(f"Content: {content!r}")

            info = adapter.get_metadata("greetings/hello.txt")
            print(f"Size: {info.size} bytes")
            print(f"Modified: {info.last_modified}")
            print(f"MIME type: {info.mime_type}")
            print(f"Visibility: {info.visibility.value}")

    print("Done! Temp directory cleaned up automatically.")
