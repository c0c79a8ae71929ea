import json
import os
import time
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Set, TypeVar, Union

from chat_engine.core.errors import EvidenceRetrievalError
from chat_engine.core.models import Article, Event
from chat_engine.infra.logger import logger
from chat_engine.utils.chat_profiles import ChatPolicy, load_chat_policy

store_logger = logger.getChild("EvidenceStore")

Record = TypeVar("Record", Event, Article)


class EvidenceBackend(Protocol):
    """Read-only source of category-tagged records."""

    name: str

    def fetch_events(self, topics: Sequence[str]) -> List[Event]: ...

    def fetch_articles(self, topics: Sequence[str]) -> List[Article]: ...

    def known_categories(self) -> List[str]: ...

    def ping(self) -> bool: ...


class InMemoryEvidenceBackend:
    """Records held in process memory; loaded once and never mutated."""

    name = "memory"

    def __init__(self, events: Iterable[Event] = (), articles: Iterable[Article] = ()):
        self._events = tuple(events)
        self._articles = tuple(articles)

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryEvidenceBackend":
        """Load `{"events": [...], "articles": [...]}` from disk."""
        path = Path(path)
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        backend = cls(
            events=[Event.model_validate(item) for item in data.get("events", [])],
            articles=[Article.model_validate(item) for item in data.get("articles", [])],
        )
        backend.name = "json"
        store_logger.info(
            "Loaded %d events and %d articles from %s",
            len(backend._events), len(backend._articles), path,
        )
        return backend

    @staticmethod
    def _intersecting(records: Sequence[Record], topics: Sequence[str]) -> List[Record]:
        wanted = set(topics)
        return [record for record in records if wanted.intersection(record.categories)]

    def fetch_events(self, topics: Sequence[str]) -> List[Event]:
        return self._intersecting(self._events, topics)

    def fetch_articles(self, topics: Sequence[str]) -> List[Article]:
        return self._intersecting(self._articles, topics)

    def known_categories(self) -> List[str]:
        categories: Set[str] = set()
        for record in (*self._events, *self._articles):
            categories.update(record.categories)
        return sorted(categories)

    def ping(self) -> bool:
        return True


class BigQueryEvidenceBackend:
    """Reads `events` and `articles` tables with a REPEATED STRING `categories` column."""

    name = "bigquery"

    def __init__(
        self,
        project_id: Optional[str] = None,
        dataset_id: Optional[str] = None,
        query_timeout_seconds: Optional[float] = None,
    ):
        from google.cloud import bigquery

        start = time.perf_counter()
        self._bigquery = bigquery
        self.project_id = project_id or os.getenv("GCP_PROJECT_ID")
        self.dataset_id = dataset_id or os.getenv("BIGQUERY_DATASET_ID", "chat_content")
        # applies to submitting each query and to waiting on its rows
        self.query_timeout_seconds = query_timeout_seconds
        self.client = bigquery.Client(project=self.project_id, credentials=self._load_credentials())
        self.dataset_ref = f"{self.client.project}.{self.dataset_id}"
        elapsed = time.perf_counter() - start
        store_logger.info(f"BigQuery evidence backend initialized in {elapsed * 1000:.1f}ms")

    @staticmethod
    def _load_credentials():
        """Service-account credentials when GOOGLE_APPLICATION_CREDENTIALS points at a file."""
        from google.oauth2 import service_account

        service_account_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if not service_account_path or not os.path.exists(service_account_path):
            store_logger.info("No service account file; using application default credentials")
            return None
        return service_account.Credentials.from_service_account_file(
            service_account_path,
            scopes=["https://www.googleapis.com/auth/cloud-platform"],
        )

    def _query(self, sql: str, topics: Sequence[str]) -> List[Dict]:
        job_config = self._bigquery.QueryJobConfig(
            query_parameters=[
                self._bigquery.ArrayQueryParameter("topics", "STRING", list(topics)),
            ],
            use_query_cache=True,
        )
        job = self.client.query(sql, job_config=job_config, timeout=self.query_timeout_seconds)
        return [dict(row) for row in job.result(timeout=self.query_timeout_seconds)]

    def fetch_events(self, topics: Sequence[str]) -> List[Event]:
        sql = f"""
            SELECT id, title, categories, event_date AS date, description, location, url
            FROM `{self.dataset_ref}.events`
            WHERE EXISTS (SELECT 1 FROM UNNEST(categories) AS c WHERE LOWER(c) IN UNNEST(@topics))
        """
        return [Event.model_validate(row) for row in self._query(sql, topics)]

    def fetch_articles(self, topics: Sequence[str]) -> List[Article]:
        sql = f"""
            SELECT id, title, body_markdown, categories, url
            FROM `{self.dataset_ref}.articles`
            WHERE EXISTS (SELECT 1 FROM UNNEST(categories) AS c WHERE LOWER(c) IN UNNEST(@topics))
        """
        return [Article.model_validate(row) for row in self._query(sql, topics)]

    def known_categories(self) -> List[str]:
        sql = f"""
            SELECT DISTINCT LOWER(c) AS category FROM (
                SELECT categories FROM `{self.dataset_ref}.events`
                UNION ALL
                SELECT categories FROM `{self.dataset_ref}.articles`
            ), UNNEST(categories) AS c
            ORDER BY category
        """
        rows = self.client.query(sql).result()
        return [row["category"] for row in rows]

    def ping(self) -> bool:
        try:
            self.client.get_dataset(self.dataset_ref)
            return True
        except Exception as e:
            store_logger.warning(f"BigQuery dataset {self.dataset_ref} unreachable: {str(e)}")
            return False


def _event_sort_key(match_count: int, event: Event):
    # undated events sort after dated ones
    return (-match_count, event.date is None, event.date or date.max, event.id)


def _article_sort_key(match_count: int, article: Article):
    return (-match_count, article.title.lower(), article.id)


class EvidenceStore:
    """
    Read-only accessor over an evidence backend.

    Owns matching order and result limits; the backend handle stays private.
    Backend failures surface as EvidenceRetrievalError, never as empty results.
    """

    def __init__(
        self,
        backend: EvidenceBackend,
        policy: ChatPolicy,
        today: Callable[[], date] = date.today,
    ):
        self._backend = backend
        self.policy = policy
        self._today = today

    @property
    def backend_name(self) -> str:
        return self._backend.name

    @staticmethod
    def _topic_set(topics: Iterable[str], category: Optional[str]) -> List[str]:
        wanted = {str(topic).strip().lower() for topic in topics or () if str(topic).strip()}
        if category and category.strip():
            wanted.add(category.strip().lower())
        return sorted(wanted)

    def _fetch(self, kind: str, fetcher: Callable[[Sequence[str]], List[Record]], topics: List[str]) -> List[Record]:
        try:
            return list(fetcher(topics))
        except Exception as exc:
            store_logger.error("Evidence retrieval failed for %s (%d topics): %s", kind, len(topics), exc)
            raise EvidenceRetrievalError(f"{kind} retrieval failed: {exc}") from exc

    @staticmethod
    def _rank(records: Iterable[Record], topics: List[str], sort_key) -> List[Record]:
        wanted = set(topics)
        scored = []
        for record in records:
            match_count = len(wanted.intersection(record.categories))
            if match_count:
                scored.append((sort_key(match_count, record), record))
        scored.sort(key=lambda item: item[0])
        return [record for _, record in scored]

    def find_events(self, topics: Iterable[str], category: Optional[str] = None) -> List[Event]:
        """Events whose categories intersect the topics, best match first, then soonest."""
        wanted = self._topic_set(topics, category)
        if not wanted:
            return []
        events = self._fetch("events", self._backend.fetch_events, wanted)
        if self.policy.future_events_only:
            today = self._today()
            events = [event for event in events if event.date is None or event.date >= today]
        return self._rank(events, wanted, _event_sort_key)[: self.policy.max_events]

    def find_articles(self, topics: Iterable[str], category: Optional[str] = None) -> List[Article]:
        """Articles whose categories intersect the topics, best match first, then by title."""
        wanted = self._topic_set(topics, category)
        if not wanted:
            return []
        articles = self._fetch("articles", self._backend.fetch_articles, wanted)
        return self._rank(articles, wanted, _article_sort_key)[: self.policy.max_articles]

    def known_categories(self) -> List[str]:
        try:
            return self._backend.known_categories()
        except Exception as exc:
            raise EvidenceRetrievalError(f"category listing failed: {exc}") from exc

    def is_reachable(self) -> bool:
        try:
            return bool(self._backend.ping())
        except Exception as exc:
            store_logger.warning("Evidence backend ping failed: %s", exc)
            return False


def create_backend_from_env(policy: Optional[ChatPolicy] = None) -> EvidenceBackend:
    """Build the backend named by EVIDENCE_BACKEND (json | bigquery)."""
    backend_name = os.getenv("EVIDENCE_BACKEND", "json").strip().lower()
    if backend_name == "bigquery":
        timeout = policy.evidence_timeout_seconds if policy else None
        return BigQueryEvidenceBackend(query_timeout_seconds=timeout)
    if backend_name == "json":
        return InMemoryEvidenceBackend.from_json_file(os.getenv("EVIDENCE_JSON_PATH", "data/evidence.json"))
    raise ValueError(f"Unsupported EVIDENCE_BACKEND '{backend_name}'")


@lru_cache(maxsize=1)
def get_evidence_store() -> EvidenceStore:
    """Return the process-wide evidence store, created on first use."""
    start = time.perf_counter()
    policy = load_chat_policy(store_logger)
    store = EvidenceStore(create_backend_from_env(policy), policy)
    elapsed = time.perf_counter() - start
    store_logger.info(f"Evidence store ({store.backend_name}) ready in {elapsed * 1000:.1f}ms")
    return store
