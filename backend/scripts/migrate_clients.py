"""
Migrate Clients Script - Imports legacy client records into the state store
Run: python -m scripts.migrate_clients
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from clientflow.config.settings import get_settings
from clientflow.repositories.client_state_repo import ClientStateRepository
from clientflow.utils.idgen import generate_correlation_id
from clientflow.utils.logger import setup_logging, set_correlation_id


def main():
    setup_logging()
    set_correlation_id(generate_correlation_id())
    settings = get_settings()

    print("=== Migrating legacy clients ===")
    print("-" * 40)
    print(f"Legacy source: {settings.legacy_clients_path}")
    print(f"State directory: {settings.state_dir}")

    repo = ClientStateRepository.from_settings(settings)
    migrated = repo.migrate_legacy_data()

    print(f"Migrated: {migrated}")
    print(f"Clients in store: {len(repo.list())}")
    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
