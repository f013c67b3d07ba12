"""
DuckDB schema for review state persistence.

Timestamps are stored as naive UTC ``TIMESTAMP`` values; marshalling in
db_utils converts at the boundary.
"""

DB_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS review_states (
    user_id          VARCHAR NOT NULL,
    card_id          VARCHAR NOT NULL,
    ease_factor      DOUBLE NOT NULL,
    interval_days    INTEGER NOT NULL CHECK (interval_days >= 0),
    repetitions      INTEGER NOT NULL CHECK (repetitions >= 0),
    due_at           TIMESTAMP,
    last_reviewed_at TIMESTAMP,
    PRIMARY KEY (user_id, card_id)
);

CREATE SEQUENCE IF NOT EXISTS review_log_seq START 1;

CREATE TABLE IF NOT EXISTS review_log (
    review_id     INTEGER PRIMARY KEY DEFAULT nextval('review_log_seq'),
    user_id       VARCHAR NOT NULL,
    card_id       VARCHAR NOT NULL,
    outcome       VARCHAR NOT NULL,
    reviewed_at   TIMESTAMP NOT NULL,
    ease_before   DOUBLE NOT NULL,
    ease_after    DOUBLE NOT NULL,
    interval_days INTEGER NOT NULL,
    repetitions   INTEGER NOT NULL,
    due_at        TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_review_log_user_card
    ON review_log (user_id, card_id);
"""
