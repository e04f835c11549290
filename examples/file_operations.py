"""File operations — the StorageAdapter surface demonstrated.

Covers: write, read, exists, list, move, copy, directory moves and copies,
metadata, visibility, delete and delete_directory, plus operation events.
"""

from __future__ import annotations

from remote_adapter import OperationEvent, create_adapter


def log_event(event: OperationEvent) -> None:
    status = event.outcome if event.error_kind is None else f"{event.outcome} ({event.error_kind})"
    print(f"    [event] {event.operation} {event.path!r}: {status} in {event.duration * 1000:.2f} ms")


if __name__ == "__main__":
    with create_adapter({"root_path": "workspace", "cache": {"enabled": True}}, event_sink=log_event) as adapter:
        # --- Write ---
        adapter.write("docs/readme.txt", b"First file")
        adapter.write("docs/changelog.txt", b"v0.1.0 - initial release")
        adapter.write("data/report.csv", b"col1,col2\n1,2\n3,4")
        adapter.write("tmp/scratch.txt", b"temporary data")
        print("Created 4 files.\n")

        # --- Existence ---
        print("docs is a directory:", adapter.directory_exists("docs"))
        print("docs/readme.txt is a file:", adapter.file_exists("docs/readme.txt"))

        # --- List ---
        print("\nEverything under the root:")
        for entry in adapter.list_contents("", deep=True):
            kind = "dir " if entry.is_dir else "file"
            print(f"  {kind} {entry.path}")

        # --- Move and copy ---
        adapter.move("docs/changelog.txt", "docs/CHANGELOG.txt")
        adapter.copy("data/report.csv", "backup/report.csv")
        adapter.copy_directory("docs", "docs-v1")
        adapter.move_directory("tmp", "archive/tmp")

        # --- Metadata ---
        meta = adapter.get_metadata("backup/report.csv")
        print(f"\nbackup/report.csv: {meta.size} bytes, {meta.mime_type}, {meta.visibility.value}")
        adapter.set_visibility("backup/report.csv", "public")
        print("visibility after set_visibility:", adapter.visibility("backup/report.csv").value)

        # --- Delete ---
        adapter.delete("data/report.csv")
        adapter.delete_directory("archive")
        print("\nRemaining:", [entry.path for entry in adapter.list_contents("", deep=True)])

    print("\nDone!")
