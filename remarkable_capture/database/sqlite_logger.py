#!/usr/bin/env python3
import sqlite3
from datetime import datetime
from pathlib import Path

import blake3

DDL_CAPTURES = """
CREATE TABLE IF NOT EXISTS captures (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    host TEXT NOT NULL,
    profile TEXT NOT NULL,
    relative_path TEXT NOT NULL,
    file_size_bytes INTEGER NOT NULL,
    data_hash TEXT NOT NULL,
    notes TEXT
);
"""


def calculate_file_hash(file_path):
    """calculate BLAKE3 hash of file content"""
    hasher = blake3.blake3()
    with open(str(file_path), 'rb') as f:
        for chunk in iter(lambda: f.read(4096), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def init_db(db_path: Path):
    """Initialize SQLite manifest with schema"""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.execute(DDL_CAPTURES)
    conn.commit()
    conn.close()
    print(f"[DB] Initialized SQLite at {db_path}")


def log_to_sqlite(db_path: Path, capture: dict) -> int:
    """
    Log a saved screenshot to the SQLite manifest.

    Args:
        db_path: Manifest database file
        capture: dict containing:
            - host: device address
            - profile: device profile name
            - relative_path: path reported to the caller
            - file_path: absolute Path to the PNG
            - notes: optional free text

    Returns:
        capture_id: Integer primary key for this capture
    """
    file_path = Path(capture["file_path"])
    data_hash = calculate_file_hash(file_path)

    conn = sqlite3.connect(db_path)
    c = conn.cursor()
    c.execute('''
        INSERT INTO captures (timestamp, host, profile, relative_path,
                              file_size_bytes, data_hash, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    ''', (
        capture.get("timestamp", datetime.now()).isoformat(),
        capture["host"],
        capture["profile"],
        capture["relative_path"],
        file_path.stat().st_size,
        data_hash,
        capture.get("notes", ""),
    ))

    capture_id = c.lastrowid
    conn.commit()
    conn.close()

    print(f"[DB] Logged capture #{capture_id}: {file_path.name}")
    return capture_id
