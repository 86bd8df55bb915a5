import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from marketplace.catalog import CITIES, SEED_PROVIDERS
from marketplace.models import (
    ContactInfo,
    Provider,
    ProviderLocation,
    ProviderProfileSaveRequest,
    Review,
    ServiceCard,
    ServiceCardCreateRequest,
    Session,
)
from marketplace.services.errors import (
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
)

logger = logging.getLogger(__name__)

SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "true").lower() in {"1", "true", "yes"}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dedupe_skills(skills: List[str]) -> List[str]:
    seen = set()
    result: List[str] = []
    for skill in skills:
        cleaned = (skill or "").strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


@dataclass
class ProviderStore:
    db_path: str
    seed: bool = SEED_DEMO_DATA

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()
        if self.seed:
            self._seed_if_needed()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS providers (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        bio TEXT NOT NULL DEFAULT '',
                        skills_json TEXT NOT NULL DEFAULT '[]',
                        location_json TEXT NOT NULL DEFAULT '{}',
                        pricing TEXT NOT NULL DEFAULT '',
                        availability TEXT NOT NULL DEFAULT '',
                        contact_info_json TEXT NOT NULL DEFAULT '{}',
                        image_url TEXT,
                        rating REAL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS provider_cards (
                        id TEXT PRIMARY KEY,
                        provider_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        description TEXT NOT NULL,
                        image TEXT,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS provider_reviews (
                        id TEXT PRIMARY KEY,
                        provider_id TEXT NOT NULL,
                        author_id TEXT NOT NULL,
                        author_name TEXT NOT NULL,
                        text TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS profile_views (
                        id TEXT PRIMARY KEY,
                        provider_id TEXT NOT NULL,
                        viewer_id TEXT NOT NULL,
                        viewed_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_cards_provider ON provider_cards(provider_id)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_reviews_provider ON provider_reviews(provider_id)")
                conn.commit()

    def _seed_if_needed(self) -> None:
        with self._lock:
            with self._connect() as conn:
                existing = conn.execute("SELECT COUNT(*) AS c FROM providers").fetchone()
                if int(existing["c"]) > 0:
                    return
                now = _utc_now()
                for seed in SEED_PROVIDERS:
                    conn.execute(
                        """
                        INSERT INTO providers (
                            id, name, bio, skills_json, location_json, pricing, availability,
                            contact_info_json, image_url, rating, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            seed["user_id"],
                            seed["name"],
                            seed["bio"],
                            json.dumps(seed["skills"]),
                            json.dumps(seed["location"]),
                            seed["pricing"],
                            seed["availability"],
                            json.dumps(seed["contact_info"]),
                            None,
                            seed.get("rating"),
                            now,
                            now,
                        ),
                    )
                conn.commit()
        logger.info("Seeded %d demo providers", len(SEED_PROVIDERS))

    def _row_to_provider(self, row: sqlite3.Row) -> Provider:
        return Provider(
            id=row["id"],
            user_id=row["id"],
            name=row["name"],
            bio=row["bio"],
            skills=self._safe_json(row["skills_json"], []),
            location=ProviderLocation.model_validate(self._safe_json(row["location_json"], {})),
            pricing=row["pricing"],
            availability=row["availability"],
            contact_info=ContactInfo.model_validate(self._safe_json(row["contact_info_json"], {})),
            image_url=row["image_url"],
            rating=float(row["rating"]) if row["rating"] is not None else None,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _safe_json(self, raw_value: Any, default: Any) -> Any:
        if raw_value in (None, ""):
            return default
        try:
            parsed = json.loads(raw_value)
        except json.JSONDecodeError:
            return default
        return parsed if isinstance(parsed, type(default)) else default

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        return self._row_to_provider(row) if row else None

    def list_providers(self, skill: Optional[str] = None) -> List[Provider]:
        """All providers in insertion order, optionally narrowed to one skill tag."""
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute("SELECT * FROM providers ORDER BY rowid").fetchall()
        providers = [self._row_to_provider(row) for row in rows]
        if skill:
            providers = [provider for provider in providers if skill in provider.skills]
        return providers

    def save_profile(
        self,
        *,
        owner: Session,
        update: ProviderProfileSaveRequest,
    ) -> Provider:
        if owner.user_type != "provider":
            raise MarketplacePermissionError("Only provider accounts can save a provider profile")

        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM providers WHERE id = ?", (owner.user_id,)).fetchone()
                current: Dict[str, Any]
                if row:
                    current = self._row_to_provider(row).model_dump()
                else:
                    current = Provider(
                        id=owner.user_id,
                        user_id=owner.user_id,
                        name=owner.display_name,
                        contact_info=ContactInfo(),
                    ).model_dump()

                # An explicit null clears the stored value; omitted fields are kept.
                fields = update.model_dump(exclude_unset=True)
                merged = {**current, **fields}
                for nested in ("location", "contact_info"):
                    if fields.get(nested) is not None:
                        merged[nested] = {**(current.get(nested) or {}), **fields[nested]}

                name = (merged.get("name") or "").strip()
                if not name:
                    raise MarketplaceValidationError("Name is required")
                location = ProviderLocation.model_validate(merged.get("location") or {})
                if location.city and location.city not in CITIES:
                    raise MarketplaceValidationError(f"Unknown city. Allowed: {', '.join(CITIES)}")
                skills = _dedupe_skills(list(merged.get("skills") or []))
                now = _utc_now()

                conn.execute(
                    """
                    INSERT INTO providers (
                        id, name, bio, skills_json, location_json, pricing, availability,
                        contact_info_json, image_url, rating, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        bio = excluded.bio,
                        skills_json = excluded.skills_json,
                        location_json = excluded.location_json,
                        pricing = excluded.pricing,
                        availability = excluded.availability,
                        contact_info_json = excluded.contact_info_json,
                        image_url = excluded.image_url,
                        updated_at = excluded.updated_at
                    """,
                    (
                        owner.user_id,
                        name,
                        (merged.get("bio") or "").strip(),
                        json.dumps(skills),
                        json.dumps(location.model_dump()),
                        (merged.get("pricing") or "").strip(),
                        (merged.get("availability") or "").strip(),
                        json.dumps(merged.get("contact_info") or {}),
                        merged.get("image_url"),
                        merged.get("rating"),
                        merged.get("created_at") or now,
                        now,
                    ),
                )
                conn.commit()
                saved = conn.execute("SELECT * FROM providers WHERE id = ?", (owner.user_id,)).fetchone()
        logger.info("Saved provider profile %s", owner.user_id)
        return self._row_to_provider(saved)

    def delete_profile(self, *, provider_id: str, actor: Session) -> None:
        """Removes the provider record only; cards, requests and reviews stay behind."""
        if actor.user_id != provider_id and not actor.is_admin:
            raise MarketplacePermissionError("Only the profile owner or an admin can delete a provider")
        with self._lock:
            with self._connect() as conn:
                deleted = conn.execute("DELETE FROM providers WHERE id = ?", (provider_id,)).rowcount
                conn.commit()
        if not deleted:
            raise MarketplaceNotFoundError("Provider not found")
        logger.info("Provider %s deleted by %s", provider_id, actor.user_id)

    def create_card(self, *, owner: Session, request: ServiceCardCreateRequest) -> ServiceCard:
        if owner.user_type != "provider":
            raise MarketplacePermissionError("Only providers can create service cards")
        title = request.title.strip()
        description = request.description.strip()
        if not title or not description:
            raise MarketplaceValidationError("Title and description required")

        card = ServiceCard(
            id=f"card_{uuid4().hex[:10]}",
            provider_id=owner.user_id,
            title=title,
            description=description,
            image=request.image or None,
            created_at=_utc_now(),
        )
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO provider_cards (id, provider_id, title, description, image, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (card.id, card.provider_id, card.title, card.description, card.image, card.created_at),
                )
                conn.commit()
        return card

    def list_cards(self, provider_id: str) -> List[ServiceCard]:
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM provider_cards WHERE provider_id = ? ORDER BY created_at, rowid",
                    (provider_id,),
                ).fetchall()
        return [
            ServiceCard(
                id=row["id"],
                provider_id=row["provider_id"],
                title=row["title"],
                description=row["description"],
                image=row["image"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def delete_card(self, *, owner: Session, card_id: str) -> None:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT provider_id FROM provider_cards WHERE id = ?", (card_id,)).fetchone()
                if not row:
                    raise MarketplaceNotFoundError("Card not found")
                if row["provider_id"] != owner.user_id:
                    raise MarketplacePermissionError("Only the card owner can delete it")
                conn.execute("DELETE FROM provider_cards WHERE id = ?", (card_id,))
                conn.commit()

    def add_review(self, *, provider_id: str, author: Session, text: str) -> Review:
        cleaned = (text or "").strip()
        if not cleaned:
            raise MarketplaceValidationError("Review text is required")
        if self.get_provider(provider_id) is None:
            raise MarketplaceNotFoundError("Provider not found")
        review = Review(
            id=f"rev_{uuid4().hex[:10]}",
            provider_id=provider_id,
            author_id=author.user_id,
            author_name=author.display_name or "Anonymous",
            text=cleaned,
            created_at=_utc_now(),
        )
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO provider_reviews (id, provider_id, author_id, author_name, text, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (review.id, review.provider_id, review.author_id, review.author_name, review.text, review.created_at),
                )
                conn.commit()
        return review

    def list_reviews(self, provider_id: str) -> List[Review]:
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM provider_reviews WHERE provider_id = ? ORDER BY created_at, rowid",
                    (provider_id,),
                ).fetchall()
        return [
            Review(
                id=row["id"],
                provider_id=row["provider_id"],
                author_id=row["author_id"],
                author_name=row["author_name"],
                text=row["text"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def log_profile_view(self, provider_id: str, viewer_id: str) -> None:
        try:
            with self._lock:
                with self._connect() as conn:
                    conn.execute(
                        "INSERT INTO profile_views (id, provider_id, viewer_id, viewed_at) VALUES (?, ?, ?, ?)",
                        (f"pv_{uuid4().hex[:10]}", provider_id, viewer_id, _utc_now()),
                    )
                    conn.commit()
        except sqlite3.Error:
            logger.exception("Failed to log profile view for %s", provider_id)

    def count_profile_views(self, provider_id: str) -> int:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) AS c FROM profile_views WHERE provider_id = ?",
                    (provider_id,),
                ).fetchone()
        return int(row["c"])


default_db = str(Path(__file__).resolve().parents[2] / "data" / "marketplace.sqlite3")
provider_store = ProviderStore(db_path=os.getenv("MARKETPLACE_DB_PATH", default_db))
