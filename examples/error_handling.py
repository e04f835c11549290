"""Error handling — NotFound, AlreadyExists, InvalidPath and the error kinds.

Every failure is a ``StorageError`` subclass carrying the operation and
path, and a ``kind`` suited for programmatic handling.
"""

from __future__ import annotations

from remote_adapter import (
    AlreadyExists,
    ConnectionFailed,
    ExistenceCheckFailed,
    InvalidPath,
    NotFound,
    RetryAttempt,
    RetryPolicy,
    StorageError,
    create_adapter,
)

if __name__ == "__main__":
    with create_adapter({"client": {"transport": "memory"}}) as adapter:
        # --- NotFound ---
        try:
            adapter.read("nonexistent.txt")
        except NotFound as exc:
            print(f"NotFound: {exc}")
            print(f"  operation={exc.operation}, path={exc.path}, kind={exc.kind.value}")

        # --- AlreadyExists ---
        adapter.write("existing.txt", b"data")
        try:
            adapter.write("existing.txt", b"new data", overwrite=False)
        except AlreadyExists as exc:
            print(f"\nAlreadyExists: {exc}")

        # --- InvalidPath (path traversal attempt) ---
        try:
            adapter.read("../../etc/passwd")
        except InvalidPath as exc:
            print(f"\nInvalidPath: {exc}")

        # --- Catch any adapter error with the base class ---
        for path in ["missing.txt", "../../escape"]:
            try:
                adapter.read(path)
            except StorageError as exc:
                print(f"\n{type(exc).__name__} ({exc.kind.value}): {exc}")

        # --- delete with missing_ok ---
        adapter.delete("nonexistent.txt", missing_ok=True)
        print("\ndelete(missing_ok=True) succeeded silently.")

        # --- existence checks never confuse "unreachable" with "absent" ---
        try:
            print("\nexists:", adapter.file_exists("existing.txt"))
        except ExistenceCheckFailed as exc:
            print(f"Could not tell: {exc} (cause kind {exc.context['kind']})")

    # --- Retry policy on its own ---
    def report(attempt: RetryAttempt) -> None:
        print(f"  attempt {attempt.attempt} failed ({attempt.error}); retrying in {attempt.delay:.2f}s")

    policy = RetryPolicy(max_retries=2, base_delay=0.01, on_retry=report)
    calls = {"n": 0}

    def flaky() -> str:
        calls["n"] += 1
        if calls["n"] < 3:
            raise ConnectionFailed("link dropped", operation="demo")
        return "ok"

    print("\nRetrying a flaky call:")
    print("  result:", policy.execute(flaky, description="demo"))
    print("Retryable kinds:", sorted(k.value for k in policy.retryable_kinds))
    print("NotFound retryable?", policy.should_retry(NotFound("gone")))

    print("\nDone!")
