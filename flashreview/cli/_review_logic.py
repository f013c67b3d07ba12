from datetime import datetime
from pathlib import Path
from typing import Optional

from flashreview.cli.review_ui import start_review_flow
from flashreview.corpus import CardStore
from flashreview.db.database import ReviewStateDatabase
from flashreview.review_manager import ReviewSessionManager
from flashreview.scheduler import BaseScheduler


def review_logic(
    card_store: CardStore,
    db_path: Path,
    user_id: str,
    limit: int,
    scheduler: Optional[BaseScheduler] = None,
    now: Optional[datetime] = None,
):
    """
    Set up and start an interactive review session.

    Opens the review state database for ``user_id``, makes sure its schema
    exists, and runs the review flow over the injected card store.
    """
    with ReviewStateDatabase(db_path=db_path, user_id=user_id) as db:
        db.initialize_schema()
        manager = ReviewSessionManager(
            card_store=card_store, store=db, scheduler=scheduler
        )
        start_review_flow(manager, limit=limit, now=now)
