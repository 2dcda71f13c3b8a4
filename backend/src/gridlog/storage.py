import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from .schema import (
    Driver,
    LapRecord,
    RaceEvent,
    Season,
    SessionResultRecord,
    TyreStintRecord,
    UDPParticipantRecord,
)

logger = logging.getLogger(__name__)


class StorageUnavailableError(RuntimeError):
    """The database could not be opened or initialised."""


_LAP_COLUMNS = (
    "driver_id", "lap_number", "lap_time_ms",
    "sector1_time_ms", "sector1_time_minutes",
    "sector2_time_ms", "sector2_time_minutes",
    "sector3_time_ms", "sector3_time_minutes",
    "lap_valid_bit_flags", "session_uid", "session_time", "frame_identifier",
)


class TelemetryStorage:
    """SQLite-backed store for drivers, seasons, events and UDP session data."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = threading.Lock()

    def _connect(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _db(self):
        with self._lock:
            conn = self._connect()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def init_db(self) -> None:
        try:
            with self._db() as db:
                db.execute("""
                CREATE TABLE IF NOT EXISTS drivers(
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    steam_id TEXT,
                    team TEXT,
                    number INTEGER,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at INTEGER NOT NULL
                )""")
                db.execute("""
                CREATE TABLE IF NOT EXISTS seasons(
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    year INTEGER NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL
                )""")
                db.execute("""
                CREATE TABLE IF NOT EXISTS events(
                    id TEXT PRIMARY KEY,
                    season_id TEXT NOT NULL,
                    track_name TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'scheduled',
                    created_at INTEGER NOT NULL
                )""")
                db.execute("""
                CREATE TABLE IF NOT EXISTS udp_participants(
                    id TEXT PRIMARY KEY,
                    season_id TEXT NOT NULL,
                    driver_id TEXT,
                    vehicle_index INTEGER NOT NULL,
                    ai_controlled INTEGER NOT NULL,
                    f123_driver_id INTEGER,
                    network_id INTEGER,
                    team_id INTEGER,
                    my_team INTEGER,
                    race_number INTEGER,
                    nationality INTEGER,
                    name TEXT,
                    your_telemetry INTEGER,
                    show_online_names INTEGER,
                    platform INTEGER,
                    session_uid TEXT NOT NULL,
                    session_time REAL,
                    frame_identifier INTEGER,
                    created_at INTEGER NOT NULL
                )""")
                db.execute("""
                CREATE TABLE IF NOT EXISTS udp_session_results(
                    id TEXT PRIMARY KEY,
                    season_id TEXT NOT NULL,
                    event_id TEXT NOT NULL,
                    driver_id TEXT,
                    position INTEGER,
                    num_laps INTEGER,
                    grid_position INTEGER,
                    points INTEGER,
                    num_pit_stops INTEGER,
                    result_status INTEGER,
                    best_lap_time_ms INTEGER,
                    total_race_time_seconds REAL,
                    penalties_time INTEGER,
                    num_penalties INTEGER,
                    num_tyre_stints INTEGER,
                    session_uid TEXT NOT NULL,
                    session_time REAL,
                    frame_identifier INTEGER,
                    created_at INTEGER NOT NULL
                )""")
                db.execute("""
                CREATE TABLE IF NOT EXISTS udp_tyre_stints(
                    id TEXT PRIMARY KEY,
                    driver_id TEXT,
                    session_result_id TEXT,
                    stint_number INTEGER NOT NULL,
                    end_lap INTEGER,
                    tyre_actual_compound INTEGER,
                    tyre_visual_compound INTEGER,
                    session_uid TEXT NOT NULL,
                    session_time REAL,
                    frame_identifier INTEGER,
                    created_at INTEGER NOT NULL
                )""")
                db.execute("""
                CREATE TABLE IF NOT EXISTS udp_lap_history(
                    id TEXT PRIMARY KEY,
                    driver_id TEXT,
                    lap_number INTEGER NOT NULL,
                    lap_time_ms INTEGER NOT NULL,
                    sector1_time_ms INTEGER,
                    sector1_time_minutes INTEGER,
                    sector2_time_ms INTEGER,
                    sector2_time_minutes INTEGER,
                    sector3_time_ms INTEGER,
                    sector3_time_minutes INTEGER,
                    lap_valid_bit_flags INTEGER,
                    session_uid TEXT NOT NULL,
                    session_time REAL,
                    frame_identifier INTEGER,
                    created_at INTEGER NOT NULL
                )""")
                db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_lap_history_session_driver "
                    "ON udp_lap_history(session_uid, driver_id, lap_number)"
                )
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot initialise database at {self.db_path}: {e}") from e

    # --- drivers ---

    def add_driver(self, driver: Driver) -> Driver:
        with self._db() as db:
            db.execute("""
            INSERT INTO drivers(id, name, steam_id, team, number, is_active, created_at)
            VALUES(?,?,?,?,?,?,?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name,
                steam_id=excluded.steam_id,
                team=excluded.team,
                number=excluded.number,
                is_active=excluded.is_active
            """, (driver.id, driver.name, driver.steam_id, driver.team, driver.number,
                  int(driver.is_active), int(time.time())))
        return driver

    def list_drivers(self) -> List[Driver]:
        with self._db() as db:
            cur = db.execute(
                "SELECT id, name, steam_id, team, number, is_active FROM drivers ORDER BY name"
            )
            return [Driver(**{**dict(r), "is_active": bool(r["is_active"])}) for r in cur.fetchall()]

    def drivers_by_steam_id(self) -> Dict[str, Driver]:
        """Known drivers keyed by the stable external identifier."""
        index = {}
        for driver in self.list_drivers():
            if driver.steam_id and driver.steam_id.strip():
                index[driver.steam_id.strip()] = driver
        return index

    # --- seasons & events ---

    def add_season(self, season: Season) -> Season:
        with self._db() as db:
            if season.is_active:
                db.execute("UPDATE seasons SET is_active=0")
            db.execute("""
            INSERT OR REPLACE INTO seasons(id, name, year, is_active, created_at)
            VALUES(?,?,?,?,?)
            """, (season.id, season.name, season.year, int(season.is_active), int(time.time())))
        return season

    def set_active_season(self, season_id: str) -> bool:
        with self._db() as db:
            cur = db.execute("SELECT 1 FROM seasons WHERE id=?", (season_id,))
            if cur.fetchone() is None:
                return False
            db.execute("UPDATE seasons SET is_active=0")
            db.execute("UPDATE seasons SET is_active=1 WHERE id=?", (season_id,))
        return True

    def get_active_season(self) -> Optional[Season]:
        with self._db() as db:
            cur = db.execute(
                "SELECT id, name, year, is_active FROM seasons WHERE is_active=1 LIMIT 1"
            )
            row = cur.fetchone()
            if not row:
                return None
            return Season(id=row["id"], name=row["name"], year=row["year"], is_active=True)

    def add_event(self, event: RaceEvent) -> RaceEvent:
        with self._db() as db:
            db.execute("""
            INSERT OR REPLACE INTO events(id, season_id, track_name, status, created_at)
            VALUES(?,?,?,?,?)
            """, (event.id, event.season_id, event.track_name, event.status, time.time_ns()))
        return event

    def get_event(self, event_id: str) -> Optional[RaceEvent]:
        with self._db() as db:
            cur = db.execute(
                "SELECT id, season_id, track_name, status FROM events WHERE id=?", (event_id,)
            )
            row = cur.fetchone()
            return RaceEvent(**dict(row)) if row else None

    def get_current_event_for_season(self, season_id: str) -> Optional[str]:
        """Oldest still-scheduled event of the season."""
        with self._db() as db:
            cur = db.execute("""
            SELECT id FROM events
            WHERE season_id=? AND status='scheduled'
            ORDER BY created_at ASC
            LIMIT 1""", (season_id,))
            row = cur.fetchone()
            return row["id"] if row else None

    def find_active_event_by_track(self, track_name: str) -> Optional[str]:
        with self._db() as db:
            cur = db.execute("""
            SELECT id FROM events
            WHERE track_name=? AND status='scheduled'
            ORDER BY created_at ASC
            LIMIT 1""", (track_name,))
            row = cur.fetchone()
            return row["id"] if row else None

    def find_or_create_event(self, season_id: str, track_name: str) -> str:
        event_id = self.find_active_event_by_track(track_name)
        if event_id:
            return event_id
        event = RaceEvent(id=f"evt_{uuid.uuid4().hex[:12]}", season_id=season_id, track_name=track_name)
        self.add_event(event)
        logger.info("Created event %s for track %s", event.id, track_name)
        return event.id

    def mark_event_completed(self, event_id: str) -> bool:
        with self._db() as db:
            cur = db.execute("UPDATE events SET status='completed' WHERE id=?", (event_id,))
            return cur.rowcount > 0

    # --- UDP records ---

    def add_udp_participant(self, rec: UDPParticipantRecord) -> str:
        rid = str(uuid.uuid4())
        with self._db() as db:
            db.execute("""
            INSERT INTO udp_participants(
                id, season_id, driver_id, vehicle_index, ai_controlled, f123_driver_id,
                network_id, team_id, my_team, race_number, nationality, name,
                your_telemetry, show_online_names, platform, session_uid,
                session_time, frame_identifier, created_at
            ) VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """, (rid, rec.season_id, rec.driver_id, rec.vehicle_index, int(rec.ai_controlled),
                  rec.f123_driver_id, rec.network_id, rec.team_id, int(rec.my_team),
                  rec.race_number, rec.nationality, rec.name, rec.your_telemetry,
                  rec.show_online_names, rec.platform, str(rec.session_uid),
                  rec.session_time, rec.frame_identifier, int(time.time())))
        return rid

    def list_udp_participants(self, session_uid: int) -> List[Dict]:
        with self._db() as db:
            cur = db.execute("""
            SELECT driver_id, vehicle_index, name, team_id, race_number, platform
            FROM udp_participants WHERE session_uid=? ORDER BY vehicle_index
            """, (str(session_uid),))
            return [dict(r) for r in cur.fetchall()]

    def add_session_result(self, rec: SessionResultRecord) -> str:
        rid = str(uuid.uuid4())
        with self._db() as db:
            db.execute("""
            INSERT INTO udp_session_results(
                id, season_id, event_id, driver_id, position, num_laps, grid_position,
                points, num_pit_stops, result_status, best_lap_time_ms, total_race_time_seconds,
                penalties_time, num_penalties, num_tyre_stints, session_uid, session_time,
                frame_identifier, created_at
            ) VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """, (rid, rec.season_id, rec.event_id, rec.driver_id, rec.position, rec.num_laps,
                  rec.grid_position, rec.points, rec.num_pit_stops, rec.result_status,
                  rec.best_lap_time_ms, rec.total_race_time_seconds, rec.penalties_time,
                  rec.num_penalties, rec.num_tyre_stints, str(rec.session_uid),
                  rec.session_time, rec.frame_identifier, int(time.time())))
        return rid

    def list_session_results(self, session_uid: int) -> List[SessionResultRecord]:
        with self._db() as db:
            cur = db.execute("""
            SELECT * FROM udp_session_results WHERE session_uid=? ORDER BY position
            """, (str(session_uid),))
            rows = cur.fetchall()
        return [
            SessionResultRecord(**{k: r[k] for k in SessionResultRecord.model_fields if k != "session_uid"},
                                session_uid=int(r["session_uid"]))
            for r in rows
        ]

    def add_tyre_stint(self, rec: TyreStintRecord) -> str:
        rid = str(uuid.uuid4())
        with self._db() as db:
            db.execute("""
            INSERT INTO udp_tyre_stints(
                id, driver_id, session_result_id, stint_number, end_lap, tyre_actual_compound,
                tyre_visual_compound, session_uid, session_time, frame_identifier, created_at
            ) VALUES(?,?,?,?,?,?,?,?,?,?,?)
            """, (rid, rec.driver_id, rec.session_result_id, rec.stint_number, rec.end_lap,
                  rec.tyre_actual_compound, rec.tyre_visual_compound, str(rec.session_uid),
                  rec.session_time, rec.frame_identifier, int(time.time())))
        return rid

    def list_tyre_stints(self, session_uid: int, driver_id: str) -> List[TyreStintRecord]:
        with self._db() as db:
            cur = db.execute("""
            SELECT * FROM udp_tyre_stints
            WHERE session_uid=? AND driver_id=?
            ORDER BY stint_number
            """, (str(session_uid), driver_id))
            rows = cur.fetchall()
        return [
            TyreStintRecord(**{k: r[k] for k in TyreStintRecord.model_fields if k != "session_uid"},
                            session_uid=int(r["session_uid"]))
            for r in rows
        ]

    def bulk_insert_lap_records(self, records: Iterable[LapRecord]) -> int:
        """Insert all lap records in one transaction; returns the row count."""
        now = int(time.time())
        rows = [
            (str(uuid.uuid4()), rec.driver_id, rec.lap_number, rec.lap_time_ms,
             rec.sector1_time_ms, rec.sector1_time_minutes,
             rec.sector2_time_ms, rec.sector2_time_minutes,
             rec.sector3_time_ms, rec.sector3_time_minutes,
             rec.lap_valid_bit_flags, str(rec.session_uid), rec.session_time,
             rec.frame_identifier, now)
            for rec in records
        ]
        if not rows:
            return 0
        with self._db() as db:
            db.executemany(f"""
            INSERT INTO udp_lap_history(id, {", ".join(_LAP_COLUMNS)}, created_at)
            VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """, rows)
        return len(rows)

    def list_lap_records(self, session_uid: Optional[int] = None,
                         driver_id: Optional[str] = None) -> List[LapRecord]:
        q = f"SELECT {', '.join(_LAP_COLUMNS)} FROM udp_lap_history WHERE 1=1"
        args = []
        if session_uid is not None:
            q += " AND session_uid=?"; args.append(str(session_uid))
        if driver_id is not None:
            q += " AND driver_id=?"; args.append(driver_id)
        q += " ORDER BY driver_id, lap_number, created_at"
        with self._db() as db:
            cur = db.execute(q, tuple(args))
            rows = cur.fetchall()
        return [LapRecord(**{**dict(r), "session_uid": int(r["session_uid"])}) for r in rows]
