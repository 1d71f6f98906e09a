#!/usr/bin/env python3
"""Find friendships stored on one side only, and optionally delete the orphan halves.

Both halves of a friendship are written and deleted in one batch, so a half
without its mirror only comes from manual console edits or an interrupted
external tool. Scans every users/{phone}/friends/{other} and checks that
users/{other}/friends/{phone} exists. Run from repo root with .env
(GOOGLE_APPLICATION_CREDENTIALS, FIREBASE_PROJECT_ID). Read-only unless --fix.
"""
import argparse
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "src"))

from dotenv import load_dotenv  # noqa: E402

from avail.application import DeleteWrite, DocumentStore  # noqa: E402
from avail.application import documents  # noqa: E402
from avail.application.account_service import pack_batches  # noqa: E402
from avail.domain import format_phone  # noqa: E402

logger = logging.getLogger("audit_friend_edges")


def find_one_sided_edges(store: DocumentStore) -> list[tuple[str, str]]:
    """Return (owner, friend) for every friend record whose mirror is missing."""
    orphans = []
    for user in store.list_documents(documents.USERS):
        for edge in store.list_documents(documents.friends_path(user.id)):
            if store.get(documents.friend_path(edge.id, user.id)) is None:
                orphans.append((user.id, edge.id))
    return orphans


def delete_orphans(store: DocumentStore, orphans: list[tuple[str, str]]) -> int:
    """Delete the orphan halves in as few batches as the store allows. Returns batches committed."""
    units = [[DeleteWrite(documents.friend_path(owner, friend))] for owner, friend in orphans]
    batches = pack_batches(units, store.max_batch_writes)
    for batch in batches:
        store.commit(batch)
    return len(batches)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--fix", action="store_true", help="delete one-sided friend records")
    args = parser.parse_args(argv)

    load_dotenv(REPO_ROOT / ".env")
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    from avail.infrastructure import (
        FirestoreDocumentStore,
        Settings,
        firestore_client,
        init_firebase,
    )

    settings = Settings.from_env()
    store = FirestoreDocumentStore(
        firestore_client(init_firebase(settings)), max_batch_writes=settings.batch_limit
    )
    orphans = find_one_sided_edges(store)
    for owner, friend in orphans:
        logger.info(
            "One-sided edge: %s lists %s as friend, but not the other way round",
            format_phone(owner),
            format_phone(friend),
        )
    logger.info("%d one-sided edge(s) found", len(orphans))
    if args.fix and orphans:
        batches = delete_orphans(store, orphans)
        logger.info("Deleted %d record(s) in %d batch(es)", len(orphans), batches)
    return 0


if __name__ == "__main__":
    sys.exit(main())
