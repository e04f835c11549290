"""Configuration — config-as-code, from_dict(), caching, retries and SFTP settings."""

from __future__ import annotations

import tempfile

from remote_adapter import (
    AdapterConfig,
    CacheConfig,
    ClientConfig,
    InvalidConfiguration,
    RetryConfig,
    create_adapter,
    registered_transports,
)

if __name__ == "__main__":
    print("Registered transports:", registered_transports())

    # --- Option 1: config-as-code with dataclasses ---
    with tempfile.TemporaryDirectory() as tmp:
        config = AdapterConfig(
            root_path="uploads",
            client=ClientConfig(transport="local", options={"root": tmp}),
            cache=CacheConfig(enabled=True, ttl=60),
            retry=RetryConfig(enabled=True, max_retries=2, base_delay=0.5),
        )
        with create_adapter(config) as uploads:
            uploads.write("photo.jpg", b"\xff\xd8\xff\xe0fake-jpeg-data")
            print("Uploads:", [entry.path for entry in uploads.list_contents()])
            # Served from the metadata cache the second time
            print("Size:", uploads.file_size("photo.jpg"), uploads.file_size("photo.jpg"))

    # --- Option 2: from a plain dict, e.g. loaded from TOML or JSON ---
    raw = {
        "root_path": "reports",
        "client": {"transport": "memory"},
        "cache": {"enabled": True, "namespace": "reports"},
    }
    with create_adapter(raw) as reports:
        reports.write("q4.csv", b"revenue,profit\n100,20\n")
        print("Reports:", [entry.path for entry in reports.list_contents()])

    # --- SFTP settings (not connected here; connection is lazy) ---
    sftp_config = AdapterConfig.from_dict(
        {
            "root_path": "incoming",
            "client": {
                "transport": "sftp",
                "host": "sftp.example.com",
                "port": 22,
                "username": "deploy",
                "password": "secret",
                "timeout": 15,
                "connect_attempts": 5,
                "options": {"base_path": "/srv/files", "host_key_policy": "strict"},
            },
            "retry": {"enabled": True},
        }
    )
    print("SFTP client config:", sftp_config.client)

    # --- Validation happens at construction ---
    try:
        AdapterConfig.from_dict({"retry": {"backoff_multiplier": 0.5}})
    except InvalidConfiguration as exc:
        print(f"Rejected: {exc}")

    print("Done!")
