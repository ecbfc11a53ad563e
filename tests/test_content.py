"""Tests for the content store backends."""

import json

import httpx
import pytest


class TestInMemoryContentStore:
    """Tests for the in-memory store."""

    def test_ids_shared_across_types(self, content_store):
        """Test that every type draws from one id counter."""
        post = content_store.create_item("posts", {"title": "A"})
        page = content_store.create_item("pages", {"title": "B"})
        media = content_store.create_item("media", {"title": "C"})

        assert [post.id, page.id, media.id] == ["1", "2", "3"]

    def test_field_mapping(self, content_store):
        """Test that names and descriptions map onto title and content."""
        term = content_store.create_item("tags", {"name": "python", "description": "Snakes", "slug": "py"})
        media = content_store.create_item("media", {"title": "notes", "data": "abc"})

        assert term.title == "python"
        assert term.content == "Snakes"
        assert term.meta == {"slug": "py"}
        assert media.data == b"abc"
        assert media.size == 3

    def test_list_items_offset(self, content_store):
        """Test offset and limit slicing."""
        for i in range(5):
            content_store.create_item("posts", {"title": f"Post {i}"})

        items = content_store.list_items("posts", 3, 10)

        assert [i.title for i in items] == ["Post 3", "Post 4"]
        assert content_store.list_items("posts", 10, 10) == []

    def test_unknown_type(self, content_store):
        """Test that unknown collections are rest_no_route."""
        from content import ContentStoreError

        with pytest.raises(ContentStoreError) as exc:
            content_store.list_items("widgets", 0, 10)

        assert exc.value.code == "rest_no_route"
        assert exc.value.status == 404

    def test_update_merges_fields(self, content_store):
        """Test that updates keep fields that were not sent."""
        content_store.create_item("posts", {"title": "Draft", "content": "Body", "status": "draft"})

        item = content_store.update_item("posts", "1", {"status": "publish"})

        assert item.title == "Draft"
        assert item.content == "Body"
        assert item.meta["status"] == "publish"

    def test_update_and_delete_missing(self, content_store):
        """Test mutations of unknown ids."""
        from content import ContentNotFoundError

        with pytest.raises(ContentNotFoundError):
            content_store.update_item("posts", "42", {"title": "x"})
        with pytest.raises(ContentNotFoundError):
            content_store.delete_item("posts", "42")

    def test_change_hooks(self, content_store):
        """Test that each mutation is announced."""
        events = []
        content_store.add_change_hook(events.append)

        content_store.create_item("posts", {"title": "Hello"})
        content_store.update_item("posts", "1", {"title": "Hello again"})
        content_store.delete_item("posts", "1")
        content_store.create_item("categories", {"name": "News"})

        assert [(e.type, e.id, e.action.value) for e in events] == [
            ("posts", "1", "created"),
            ("posts", "1", "updated"),
            ("posts", "1", "deleted"),
            ("categories", "2", "created"),
        ]
        assert events[1].data == {"title": "Hello again", "type": "post"}
        assert events[2].data == {"id": "1", "type": "post"}
        assert events[3].data == {"name": "News", "taxonomy": "category"}

    def test_dispatch_collection(self, content_store):
        """Test REST-style listing and creation."""
        created = content_store.dispatch("POST", "/wp/v2/posts", {"title": "Hello", "status": "draft"})
        for i in range(3):
            content_store.dispatch("POST", "/wp/v2/posts", {"title": f"More {i}"})

        listed = content_store.dispatch("GET", "/wp/v2/posts", {"per_page": 2, "page": 2})

        assert created["id"] == "1"
        assert created["status"] == "draft"
        assert [p["title"] for p in listed] == ["More 1", "More 2"]

    def test_dispatch_item(self, content_store):
        """Test REST-style item reads, updates and deletes."""
        content_store.dispatch("POST", "/wp/v2/pages", {"title": "About"})

        assert content_store.dispatch("GET", "/wp/v2/pages/1")["title"] == "About"
        assert content_store.dispatch("PUT", "/wp/v2/pages/1", {"title": "Team"})["title"] == "Team"

        result = content_store.dispatch("DELETE", "/wp/v2/pages/1")

        assert result["deleted"] is True
        assert result["previous"]["title"] == "Team"
        assert content_store.get_item("pages", "1") is None

    def test_dispatch_errors(self, content_store):
        """Test REST-style failures."""
        from content import ContentNotFoundError, ContentStoreError

        with pytest.raises(ContentNotFoundError) as exc:
            content_store.dispatch("GET", "/wp/v2/posts/999")
        assert exc.value.status == 404

        with pytest.raises(ContentStoreError) as exc:
            content_store.dispatch("GET", "/wp/v2/widgets")
        assert exc.value.code == "rest_no_route"

        with pytest.raises(ContentStoreError) as exc:
            content_store.dispatch("DELETE", "/wp/v2/posts")
        assert exc.value.code == "rest_no_route"

        with pytest.raises(ContentStoreError) as exc:
            content_store.dispatch("GET", "/wp/v2/posts", {"per_page": "many"})
        assert exc.value.code == "rest_invalid_param"

    def test_routes(self, content_store):
        """Test the route table."""
        routes = content_store.routes()

        assert routes["/wp/v2/posts"] == ["GET", "POST"]
        assert "DELETE" in routes["/wp/v2/media/(?P<id>[\\d]+)"]
        assert routes["/wpmcp/v1/data"] == ["POST"]


class TestBuildContentStore:
    """Tests for backend selection."""

    def test_backends_share_type_tables(self):
        """Test that both backends and resources use the base type tables."""
        from content import base, memory, rest
        from wpmcp import resources

        assert memory.CONTENT_TYPES is base.CONTENT_TYPES
        assert rest.OBJECT_KINDS is base.OBJECT_KINDS
        assert rest.TAXONOMIES is base.TAXONOMIES
        assert resources.CONTENT_TYPES is base.CONTENT_TYPES
        assert set(base.TAXONOMIES) <= set(base.CONTENT_TYPES)
        assert set(base.OBJECT_KINDS) == set(base.CONTENT_TYPES)

    def test_memory_backend(self):
        """Test the default backend."""
        from content import InMemoryContentStore, build_content_store
        from shared.config import ContentSettings

        assert isinstance(build_content_store(ContentSettings()), InMemoryContentStore)

    def test_rest_backend_requires_url(self):
        """Test that the REST backend needs a base URL."""
        from content import build_content_store
        from shared.config import ContentSettings

        with pytest.raises(ValueError):
            build_content_store(ContentSettings(backend="rest"))

    def test_rest_backend(self):
        """Test building the REST backend."""
        from content import build_content_store
        from content.rest import RESTContentStore
        from shared.config import ContentSettings

        store = build_content_store(ContentSettings(backend="rest", base_url="https://example.com/"))

        assert isinstance(store, RESTContentStore)
        assert store.base_url == "https://example.com"
        store.close()


POST = {
    "id": 7,
    "title": {"rendered": "Hello"},
    "content": {"rendered": "<p>World</p>"},
    "date": "2024-01-01T10:00:00",
    "author": 1,
    "status": "publish",
}


def rest_store(handler):
    from content.rest import RESTContentStore

    client = httpx.Client(
        transport=httpx.MockTransport(handler),
        base_url="https://example.com/wp-json",
    )
    return RESTContentStore("https://example.com", client=client)


class TestRESTContentStore:
    """Tests for the REST-backed store."""

    def test_list_items(self):
        """Test that listing sends offset pagination and maps posts."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[POST])

        items = rest_store(handler).list_items("posts", 20, 5)

        assert seen[0].url.path == "/wp-json/wp/v2/posts"
        assert seen[0].url.params["per_page"] == "5"
        assert seen[0].url.params["offset"] == "20"
        assert items[0].id == "7"
        assert items[0].title == "Hello"
        assert items[0].content == "<p>World</p>"
        assert items[0].meta["date"] == "2024-01-01T10:00:00"

    def test_list_past_end(self):
        """Test that an out-of-range page is an empty list."""
        def handler(request):
            return httpx.Response(400, json={"code": "rest_post_invalid_page_number", "message": "Out of range"})

        assert rest_store(handler).list_items("posts", 500, 20) == []

    def test_list_terms(self):
        """Test mapping of taxonomy terms."""
        def handler(request):
            return httpx.Response(200, json=[{"id": 3, "name": "News", "description": "Latest", "count": 4}])

        item = rest_store(handler).list_items("categories", 0, 20)[0]

        assert item.title == "News"
        assert item.content == "Latest"
        assert item.meta == {"count": 4}

    def test_get_missing_item(self):
        """Test that a 404 read yields None."""
        def handler(request):
            return httpx.Response(404, json={"code": "rest_post_invalid_id", "message": "Invalid post ID."})

        assert rest_store(handler).get_item("posts", "9") is None

    @pytest.mark.parametrize("path", [
        "/wp/v2/posts/../users",
        "/wp/v2/posts/%2e%2e/users",
        "/wp/v2/posts/./1",
    ])
    def test_dispatch_refuses_relative_segments(self, path):
        """Test that dot segments never reach the site."""
        from content import ContentStoreError

        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        with pytest.raises(ContentStoreError) as exc:
            rest_store(handler).dispatch("GET", path)

        assert exc.value.status == 400
        assert exc.value.code == "rest_invalid_path"
        assert seen == []

    @pytest.mark.parametrize("item_id", ["..", "%2e%2e", "1/../../users"])
    def test_get_item_refuses_non_numeric_ids(self, item_id):
        """Test that an id that would walk out of the collection is not found."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=POST)

        assert rest_store(handler).get_item("posts", item_id) is None
        assert seen == []

    def test_get_media_downloads_file(self):
        """Test that small media items carry their file data."""
        def handler(request):
            if request.url.path.endswith("/wp/v2/media/5"):
                return httpx.Response(200, json={
                    "id": 5,
                    "title": {"rendered": "Readme"},
                    "mime_type": "text/plain",
                    "source_url": "https://example.com/uploads/readme.txt",
                    "media_details": {},
                })
            return httpx.Response(200, content=b"hello")

        item = rest_store(handler).get_item("media", "5")

        assert item.data == b"hello"
        assert item.size == 5
        assert item.mime_type == "text/plain"

    def test_large_media_not_downloaded(self):
        """Test that oversized binaries are left as metadata."""
        requested = []

        def handler(request):
            requested.append(request.url.path)
            return httpx.Response(200, json={
                "id": 5,
                "title": {"rendered": "Video"},
                "mime_type": "video/mp4",
                "source_url": "https://example.com/uploads/video.mp4",
                "media_details": {"filesize": 50 * 1024 * 1024},
            })

        item = rest_store(handler).get_item("media", "5")

        assert item.data is None
        assert item.size == 50 * 1024 * 1024
        assert requested == ["/wp-json/wp/v2/media/5"]

    def test_create_announces_change(self):
        """Test that accepted mutations reach the change hooks."""
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json=POST)

        store = rest_store(handler)
        events = []
        store.add_change_hook(events.append)

        item = store.create_item("posts", {"title": "Hello"})

        assert bodies == [{"title": "Hello"}]
        assert item.id == "7"
        assert len(events) == 1
        assert events[0].id == "7"
        assert events[0].action.value == "created"
        assert events[0].data == {"title": "Hello", "type": "post"}

    def test_delete_announces_change(self):
        """Test delete events and the force flag."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"deleted": True, "previous": POST})

        store = rest_store(handler)
        events = []
        store.add_change_hook(events.append)

        item = store.delete_item("posts", "7")

        assert seen[0].method == "DELETE"
        assert seen[0].url.params["force"] == "true"
        assert item.title == "Hello"
        assert events[0].action.value == "deleted"
        assert events[0].data == {"id": "7", "type": "post"}

    def test_error_body_raises(self):
        """Test that REST error bodies become ContentStoreError."""
        from content import ContentStoreError

        def handler(request):
            return httpx.Response(403, json={"code": "rest_forbidden", "message": "Sorry, you are not allowed."})

        with pytest.raises(ContentStoreError) as exc:
            rest_store(handler).dispatch("POST", "/wp/v2/posts", {"title": "x"})

        assert exc.value.status == 403
        assert exc.value.code == "rest_forbidden"
        assert exc.value.message == "Sorry, you are not allowed."

    def test_update_missing_item(self):
        """Test that a 404 mutation names the missing item."""
        from content import ContentNotFoundError

        def handler(request):
            return httpx.Response(404, json={"code": "rest_post_invalid_id", "message": "Invalid post ID."})

        with pytest.raises(ContentNotFoundError) as exc:
            rest_store(handler).update_item("posts", "9", {"title": "x"})

        assert exc.value.item_id == "9"

    def test_routes(self):
        """Test reading the route table from the index."""
        def handler(request):
            return httpx.Response(200, json={"routes": {
                "/wp/v2/posts": {"methods": ["GET", "POST"]},
                "/wp/v2/posts/(?P<id>[\\d]+)": {"methods": ["GET", "POST", "PUT", "PATCH", "DELETE"]},
                "/oembed/1.0": {"methods": ["GET"]},
            }})

        routes = rest_store(handler).routes()

        assert routes["/wp/v2/posts"] == ["GET", "POST"]
        assert len(routes) == 3

    def test_reads_retry_transport_errors(self):
        """Test that reads survive a transient connection failure."""
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=[POST])

        items = rest_store(handler).list_items("posts", 0, 20)

        assert len(attempts) == 2
        assert items[0].id == "7"

    def test_basic_auth(self):
        """Test that application passwords are sent as basic auth."""
        from content.rest import RESTContentStore

        store = RESTContentStore("https://example.com", username="admin", application_password="abcd efgh")

        assert isinstance(store._client.auth, httpx.BasicAuth)
        store.close()
