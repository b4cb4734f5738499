"""
View Models for cached payloads
Strict mapping layer that converts the generic cached JSON into typed views.
Consumers should read these views, never the raw cached payloads, so that a
change in an upstream API shape only touches this module.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sitecache.utils.helpers import (
    first_present,
    rendered_text,
    safe_float,
    safe_int,
    safe_list,
    safe_lower,
    safe_str,
)


# =============================================================================
# REPOSITORIES
# =============================================================================


@dataclass
class RepositoryView:
    """One source-control repository."""
    id: str
    name: str
    full_name: str
    description: str = ""
    language: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    stars: int = 0
    forks: int = 0
    is_fork: bool = False
    is_archived: bool = False
    updated_at: str = ""
    html_url: str = ""

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "RepositoryView":
        """Map a cached repository (camelCase or upstream snake_case) to a view."""
        name = safe_str(raw.get("name"))
        owner = raw.get("owner") or {}
        full_name = safe_str(first_present(raw, "fullName", "full_name"))
        if not full_name and name and isinstance(owner, dict) and owner.get("login"):
            full_name = f"{owner['login']}/{name}"

        urls = raw.get("urls") or {}
        html_url = safe_str(first_present(raw, "html_url", "htmlUrl"))
        if not html_url and isinstance(urls, dict):
            html_url = safe_str(urls.get("html"))

        return cls(
            id=safe_str(raw.get("id")),
            name=name,
            full_name=full_name or name,
            description=safe_str(raw.get("description")),
            language=raw.get("language"),
            topics=[safe_str(t) for t in safe_list(raw.get("topics"))],
            stars=safe_int(first_present(raw, "stars", "stargazers_count", "stargazersCount")),
            forks=safe_int(first_present(raw, "forks", "forks_count", "forksCount")),
            is_fork=bool(first_present(raw, "isFork", "fork")),
            is_archived=bool(first_present(raw, "isArchived", "archived")),
            updated_at=safe_str(first_present(raw, "lastUpdated", "updated_at", "updatedAt")),
            html_url=html_url,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "full_name": self.full_name,
            "description": self.description,
            "language": self.language,
            "topics": list(self.topics),
            "stars": self.stars,
            "forks": self.forks,
            "is_fork": self.is_fork,
            "is_archived": self.is_archived,
            "updated_at": self.updated_at,
            "html_url": self.html_url,
        }


@dataclass
class RepositoryListView:
    repositories: List[RepositoryView] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> "RepositoryListView":
        """Accept a bare list or an object with a ``repositories`` list."""
        if isinstance(payload, dict):
            payload = payload.get("repositories")
        items = [r for r in safe_list(payload) if isinstance(r, dict)]
        return cls(repositories=[RepositoryView.from_raw(r) for r in items])

    @property
    def total(self) -> int:
        return len(self.repositories)

    def active(self) -> List[RepositoryView]:
        """Repositories that are neither forks nor archived."""
        return [r for r in self.repositories if not r.is_fork and not r.is_archived]

    def top_by_stars(self, limit: int = 6) -> List[RepositoryView]:
        return sorted(self.repositories, key=lambda r: r.stars, reverse=True)[:limit]

    def by_language(self, language: str) -> List[RepositoryView]:
        wanted = safe_lower(language)
        return [r for r in self.repositories if safe_lower(r.language) == wanted]

    def find(self, full_name: str) -> Optional[RepositoryView]:
        wanted = safe_lower(full_name)
        for repo in self.repositories:
            if safe_lower(repo.full_name) == wanted:
                return repo
        return None


# =============================================================================
# BLOG
# =============================================================================


@dataclass
class BlogPostView:
    """One blog post."""
    id: str
    title: str
    slug: str
    excerpt: str = ""
    author: str = ""
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    publish_date: str = ""
    reading_time: int = 0
    url: str = ""

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "BlogPostView":
        """Map a cached post (normalized or raw WordPress) to a view."""
        author = raw.get("author")
        if isinstance(author, dict):
            author = author.get("name")

        return cls(
            id=safe_str(raw.get("id")),
            title=rendered_text(raw.get("title")),
            slug=safe_str(raw.get("slug")),
            excerpt=rendered_text(raw.get("excerpt")),
            author=safe_str(author),
            categories=_term_names(raw.get("categories")),
            tags=_term_names(raw.get("tags")),
            publish_date=safe_str(first_present(raw, "publishDate", "date")),
            reading_time=safe_int(first_present(raw, "readingTime", "reading_time")),
            url=safe_str(first_present(raw, "originalUrl", "link")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "excerpt": self.excerpt,
            "author": self.author,
            "categories": list(self.categories),
            "tags": list(self.tags),
            "publish_date": self.publish_date,
            "reading_time": self.reading_time,
            "url": self.url,
        }


@dataclass
class BlogPostListView:
    posts: List[BlogPostView] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> "BlogPostListView":
        """Accept a bare list or an object with a ``posts`` list."""
        if isinstance(payload, dict):
            payload = payload.get("posts")
        items = [p for p in safe_list(payload) if isinstance(p, dict)]
        return cls(posts=[BlogPostView.from_raw(p) for p in items])

    @property
    def total(self) -> int:
        return len(self.posts)

    def latest(self, limit: int = 3) -> List[BlogPostView]:
        # ISO dates sort lexicographically
        return sorted(self.posts, key=lambda p: p.publish_date, reverse=True)[:limit]

    def with_tag(self, tag: str) -> List[BlogPostView]:
        wanted = safe_lower(tag)
        return [p for p in self.posts if wanted in (safe_lower(t) for t in p.tags)]


def _term_names(terms: Any) -> List[str]:
    """Categories/tags arrive as names, ids, or objects with a name."""
    names = []
    for term in safe_list(terms):
        if isinstance(term, dict):
            names.append(safe_str(term.get("name")))
        else:
            names.append(safe_str(term))
    return names


# =============================================================================
# STATUS
# =============================================================================

SERVICE_STATES = ("operational", "degraded", "down")


@dataclass
class ServiceStatusView:
    name: str
    status: str
    response_time_ms: float = 0.0
    uptime: float = 0.0
    last_checked: str = ""

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "ServiceStatusView":
        status = safe_lower(raw.get("status"))
        if status not in SERVICE_STATES:
            status = "down"
        return cls(
            name=safe_str(raw.get("name"), default="unknown"),
            status=status,
            response_time_ms=safe_float(first_present(raw, "responseTime", "response_time")),
            uptime=safe_float(raw.get("uptime")),
            last_checked=safe_str(first_present(raw, "lastChecked", "last_checked")),
        )


@dataclass
class StatusView:
    """Service monitoring snapshot."""
    services: List[ServiceStatusView] = field(default_factory=list)
    timestamp: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "StatusView":
        """Accept a bare list of services or an object with ``services``."""
        timestamp = ""
        if isinstance(payload, dict):
            timestamp = safe_str(payload.get("timestamp"))
            payload = payload.get("services")
        items = [s for s in safe_list(payload) if isinstance(s, dict)]
        return cls(services=[ServiceStatusView.from_raw(s) for s in items], timestamp=timestamp)

    @property
    def overall(self) -> str:
        """Worst service state, ``operational`` when there are no services."""
        states = {s.status for s in self.services}
        for state in ("down", "degraded"):
            if state in states:
                return state
        return "operational"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "timestamp": self.timestamp,
            "services": [
                {
                    "name": s.name,
                    "status": s.status,
                    "response_time_ms": s.response_time_ms,
                    "uptime": s.uptime,
                    "last_checked": s.last_checked,
                }
                for s in self.services
            ],
        }
