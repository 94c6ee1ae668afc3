#!/usr/bin/env python3
"""
Migration: Enforce one attempt per (student, quiz) on existing databases

- removes duplicate rows in `scores`, keeping the earliest attempt
- adds the unique index uq_score_user_quiz on scores (user_id, quiz_id)
- creates `quiz_starts` (server-side quiz start stamps) if missing

Compatible with SQLite; uses IF NOT EXISTS guards for idempotency.
"""

import sys
import os

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import app, db  # noqa: E402
from sqlalchemy import text  # noqa: E402


def migrate():
    with app.app_context():
        print("Starting migration: Add attempt guards")
        with db.engine.connect() as conn:
            conn.execute(text("PRAGMA foreign_keys = ON"))

            # --- duplicate attempts ------------------------------------------
            dupes = conn.execute(text(
                """
                SELECT COUNT(*) FROM scores
                WHERE id NOT IN (SELECT MIN(id) FROM scores GROUP BY user_id, quiz_id)
                """
            )).scalar()
            if dupes:
                print(f"Removing {dupes} duplicate attempt(s)...")
                conn.execute(text(
                    """
                    DELETE FROM scores
                    WHERE id NOT IN (SELECT MIN(id) FROM scores GROUP BY user_id, quiz_id)
                    """
                ))
            else:
                print("✓ no duplicate attempts")

            print("Creating unique index on scores (user_id, quiz_id) if not exists...")
            conn.execute(text(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS uq_score_user_quiz ON scores (user_id, quiz_id)
                """
            ))

            # --- quiz_starts table --------------------------------------------
            print("Creating 'quiz_starts' table if not exists...")
            conn.execute(text(
                """
                CREATE TABLE IF NOT EXISTS quiz_starts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    quiz_id INTEGER NOT NULL,
                    started_at DATETIME NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
                    FOREIGN KEY (quiz_id) REFERENCES quizzes (id) ON DELETE CASCADE,
                    CONSTRAINT uq_quiz_start_user_quiz UNIQUE (user_id, quiz_id)
                )
                """
            ))
            conn.execute(text(
                """
                CREATE INDEX IF NOT EXISTS ix_quiz_starts_quiz_id ON quiz_starts (quiz_id)
                """
            ))

            conn.commit()
        print("\nMigration completed successfully!\n")
        print("Created/ensured:")
        print("  - uq_score_user_quiz")
        print("  - quiz_starts")


if __name__ == "__main__":
    migrate()
