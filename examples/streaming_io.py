"""Streaming I/O — write from BytesIO, read as a stream, upload and download.

Content moves in bounded chunks; files are never buffered whole.
"""

from __future__ import annotations

import io
import os
import tempfile

from remote_adapter import create_adapter

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        remote_root = os.path.join(tmp, "remote")
        config = {"client": {"transport": "local", "options": {"root": remote_root}}}

        with create_adapter(config) as adapter:
            # --- Write from a BytesIO stream ---
            data = b"line1\nline2\nline3\nline4\nline5\n"
            adapter.write_stream("streamed.txt", io.BytesIO(data))
            print("Wrote file from BytesIO stream.")

            # --- Read as a stream ---
            with adapter.read_stream("streamed.txt") as reader:
                print(f"\nStreaming read (type: {type(reader).__name__}):")
                newline = b"\n"
                for line in reader:
                    print(f"  {line.rstrip(newline)}")

            # --- Chunked processing ---
            adapter.write("large.bin", b"X" * 100_000)
            total = 0
            chunk_count = 0
            with adapter.read_stream("large.bin") as reader:
                while chunk := reader.read(16_384):
                    total += len(chunk)
                    chunk_count += 1
            print(f"\nRead large.bin in {chunk_count} chunk(s), {total} bytes total.")

            # --- Upload and download local files ---
            local_in = os.path.join(tmp, "local.csv")
            with open(local_in, "wb") as f:
                f.write(b"id,name\n1,alpha\n2,beta\n")
            adapter.upload(
                local_in,
                "imports/local.csv",
                on_progress=lambda sent, total: print(f"  uploaded {sent}/{total} bytes"),
            )

            local_out = os.path.join(tmp, "copy.csv")
            adapter.download("imports/local.csv", local_out)
            with open(local_out, "rb") as f:
                print(f"\nDownloaded {len(f.read())} bytes back.")

    print("\nDone!")
