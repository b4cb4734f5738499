"""
Tests for typed views over cached payloads.
"""
from sitecache.view_models import (
    BlogPostListView,
    BlogPostView,
    RepositoryListView,
    RepositoryView,
    StatusView,
)


class TestRepositoryViews:

    def test_from_normalized_payload(self):
        repo = RepositoryView.from_raw({
            "id": "1",
            "name": "site",
            "fullName": "octo/site",
            "stars": 12,
            "forks": 3,
            "topics": ["web"],
            "urls": {"html": "https://github.com/octo/site"},
        })
        assert repo.full_name == "octo/site"
        assert repo.stars == 12
        assert repo.html_url == "https://github.com/octo/site"

    def test_from_upstream_payload(self):
        repo = RepositoryView.from_raw({
            "id": 99,
            "name": "tool",
            "owner": {"login": "octo"},
            "stargazers_count": "7",
            "archived": True,
            "html_url": "https://github.com/octo/tool",
        })
        assert repo.id == "99"
        assert repo.full_name == "octo/tool"
        assert repo.stars == 7
        assert repo.is_archived is True

    def test_missing_fields_use_defaults(self):
        repo = RepositoryView.from_raw({})
        assert repo.name == ""
        assert repo.stars == 0
        assert repo.topics == []
        assert repo.language is None

    def test_list_view(self):
        view = RepositoryListView.from_payload({"repositories": [
            {"name": "a", "full_name": "o/a", "stars": 1, "language": "Python"},
            {"name": "b", "full_name": "o/b", "stars": 9, "fork": True},
            "not-a-repo",
        ]})
        assert view.total == 2
        assert [r.name for r in view.top_by_stars(1)] == ["b"]
        assert [r.name for r in view.active()] == ["a"]
        assert [r.name for r in view.by_language("python")] == ["a"]
        assert view.find("O/B").name == "b"

    def test_list_view_from_garbage(self):
        assert RepositoryListView.from_payload(None).total == 0
        assert RepositoryListView.from_payload("text").total == 0


class TestBlogViews:

    def test_from_wordpress_payload(self):
        post = BlogPostView.from_raw({
            "id": 5,
            "title": {"rendered": "Hello"},
            "excerpt": {"rendered": "<p>Hi</p>"},
            "slug": "hello",
            "date": "2024-01-02T00:00:00",
            "link": "https://blog.example.com/hello",
            "tags": [{"name": "python"}, "web"],
        })
        assert post.title == "Hello"
        assert post.url == "https://blog.example.com/hello"
        assert post.tags == ["python", "web"]

    def test_author_object(self):
        post = BlogPostView.from_raw({"title": "t", "author": {"name": "Sam"}})
        assert post.author == "Sam"

    def test_latest_and_tag_filter(self):
        view = BlogPostListView.from_payload([
            {"title": "old", "publishDate": "2023-01-01", "tags": ["Python"]},
            {"title": "new", "publishDate": "2024-06-01", "tags": ["go"]},
        ])
        assert [p.title for p in view.latest(1)] == ["new"]
        assert [p.title for p in view.with_tag("python")] == ["old"]


class TestStatusView:

    def test_overall_is_worst_state(self):
        view = StatusView.from_payload({
            "timestamp": "2024-01-01T00:00:00Z",
            "services": [
                {"name": "api", "status": "operational", "responseTime": 120, "uptime": 99.9},
                {"name": "blog", "status": "degraded"},
            ],
        })
        assert view.overall == "degraded"
        assert view.services[0].response_time_ms == 120.0

    def test_unknown_state_counts_as_down(self):
        view = StatusView.from_payload([{"name": "x", "status": "weird"}])
        assert view.overall == "down"

    def test_no_services_is_operational(self):
        assert StatusView.from_payload({}).overall == "operational"
        assert StatusView.from_payload(None).to_dict()["services"] == []
