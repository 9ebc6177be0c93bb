"""Unit tests for media slots, upload policy and the DuckDB media store."""
import duckdb
import pytest

from app.errors import InvalidTypeError, NotFoundError, StoreFailureError, TooLargeError
from app.media.schemas import (
    FieldType,
    MediaKind,
    UploadPolicy,
    get_media_kind,
    resolve_extension,
)
from app.media.service import MediaStore

MIB = 1024 * 1024
JPEG = b"\xff\xd8\xff\xe0" + b"jpeg-body" * 10
PNG = b"\x89PNG\r\n\x1a\n" + b"png-body" * 10


@pytest.fixture
def connection():
    conn = duckdb.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def store(connection):
    return MediaStore(connection)


# =============================================================================
# Field types and policy
# =============================================================================


class TestFieldType:
    @pytest.mark.parametrize("raw,expected", [
        ("main", FieldType.MAIN),
        ("dashboard", FieldType.DASHBOARD),
        ("welcome", FieldType.WELCOME),
        ("weddingPhotoUrl", FieldType.MAIN),
        ("weddingPhotoUrl_dashboard", FieldType.DASHBOARD),
        ("weddingPhotoUrl_welcome", FieldType.WELCOME),
        ("banner", FieldType.MAIN),
        ("", FieldType.MAIN),
        (None, FieldType.MAIN),
    ])
    def test_normalize(self, raw, expected):
        assert FieldType.normalize(raw) == expected


class TestUploadPolicy:
    def test_media_kind(self):
        assert get_media_kind("image/webp") == MediaKind.IMAGE
        assert get_media_kind("video/quicktime") == MediaKind.VIDEO
        assert get_media_kind("application/pdf") is None

    def test_video_rejected_outside_welcome(self):
        policy = UploadPolicy()
        for field_type in (FieldType.MAIN, FieldType.DASHBOARD):
            with pytest.raises(InvalidTypeError) as exc_info:
                policy.check_type(field_type, "video/mp4")
            assert "Only JPEG, PNG, GIF, and WebP" in exc_info.value.message

    def test_welcome_type_error_lists_video_types(self):
        with pytest.raises(InvalidTypeError) as exc_info:
            UploadPolicy().check_type(FieldType.WELCOME, "application/pdf")
        assert exc_info.value.message == (
            "Invalid file type. Allowed: JPEG, PNG, GIF, WebP, MP4, WebM, MOV."
        )

    def test_image_limit_applies_on_every_slot(self):
        policy = UploadPolicy()
        for field_type in FieldType:
            with pytest.raises(TooLargeError) as exc_info:
                policy.validate(field_type, "image/jpeg", 6 * MIB)
            assert exc_info.value.message == "File size too large. Maximum size is 5MB."

    def test_video_limit_on_welcome(self):
        policy = UploadPolicy()
        assert policy.validate(FieldType.WELCOME, "video/mp4", 6 * MIB) == MediaKind.VIDEO
        with pytest.raises(TooLargeError) as exc_info:
            policy.validate(FieldType.WELCOME, "video/mp4", 51 * MIB)
        assert exc_info.value.message == "File too large. Max 50MB for video."

    def test_limits_are_inclusive(self):
        policy = UploadPolicy(max_image_bytes=100)
        assert policy.validate(FieldType.MAIN, "image/png", 100) == MediaKind.IMAGE
        with pytest.raises(TooLargeError):
            policy.validate(FieldType.MAIN, "image/png", 101)


class TestResolveExtension:
    @pytest.mark.parametrize("mimetype,declared,expected", [
        ("image/jpeg", "photo.png", "jpg"),
        ("image/jpg", None, "jpg"),
        ("video/quicktime", "clip.MOV", "mov"),
        ("video/webm", None, "webm"),
        ("image/heic", "photo.HEIC", "heic"),
        ("image/heic", "photo", "jpg"),
        ("image/heic", None, "jpg"),
    ])
    def test_resolve_extension(self, mimetype, declared, expected):
        assert resolve_extension(mimetype, declared) == expected


# =============================================================================
# Store
# =============================================================================


class TestPut:
    def test_put_stores_canonical_filename(self, store):
        result = store.put("alice", FieldType.MAIN, JPEG, "image/jpeg", "IMG_0001.jpeg")

        assert result.filename == "alice_main.jpg"
        assert result.size == len(JPEG)
        assert result.mimetype == "image/jpeg"
        assert store.get("alice_main.jpg").data == JPEG

    def test_put_accepts_raw_field_type_value(self, store):
        assert store.put("alice", "dashboard", PNG, "image/png").filename == "alice_dashboard.png"

    def test_put_rejects_unknown_field_type(self, store):
        with pytest.raises(InvalidTypeError):
            store.put("alice", "banner", PNG, "image/png")

    def test_reupload_replaces_across_extensions(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")
        result = store.put("alice", FieldType.MAIN, PNG, "image/png")

        assert result.filename == "alice_main.png"
        assert store.count_slot("alice", FieldType.MAIN) == 1
        with pytest.raises(NotFoundError):
            store.find_summary("alice_main.jpg")
        assert store.get("alice_main").data == PNG

    def test_slots_are_independent(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")
        store.put("alice", FieldType.DASHBOARD, PNG, "image/png")
        store.put("alice", FieldType.MAIN, PNG, "image/png")

        assert store.get("alice_dashboard.png").data == PNG
        assert store.count_slot("alice", FieldType.DASHBOARD) == 1

    def test_owners_with_shared_prefix_are_independent(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")
        store.put("alice_main", FieldType.MAIN, PNG, "image/png")
        store.put("alice", FieldType.MAIN, PNG, "image/png")

        assert store.get("alice_main_main.png").owner_id == "alice_main"

    def test_owner_with_dotted_prefix_survives_replace(self, store):
        store.put("bob_main.x", FieldType.MAIN, JPEG, "image/jpeg")
        store.put("bob", FieldType.MAIN, JPEG, "image/jpeg")

        store.put("bob", FieldType.MAIN, PNG, "image/png")

        assert store.count_slot("bob_main.x", FieldType.MAIN) == 1
        assert store.count_slot("bob", FieldType.MAIN) == 1
        assert store.get("bob_main.x_main.jpg").data == JPEG

    def test_policy_violations_store_nothing(self, store):
        with pytest.raises(InvalidTypeError):
            store.put("alice", FieldType.MAIN, b"%PDF", "application/pdf")
        with pytest.raises(TooLargeError):
            store.put("alice", FieldType.WELCOME, b"x" * (6 * MIB), "image/jpeg")

        assert store.count_slot("alice", FieldType.MAIN) == 0
        assert store.count_slot("alice", FieldType.WELCOME) == 0

    def test_large_video_on_welcome(self, store):
        video = b"\x00" * (6 * MIB)

        result = store.put("alice", FieldType.WELCOME, video, "video/mp4", "party.mp4")

        assert result.filename == "alice_welcome.mp4"
        assert store.find_summary("alice_welcome.mp4").size == 6 * MIB

    def test_failed_replace_keeps_previous_file(self, connection):
        store = MediaStore(connection)
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")
        store._conn = FailingInsertConnection(connection)

        with pytest.raises(StoreFailureError):
            store.put("alice", FieldType.MAIN, PNG, "image/png")

        store._conn = connection
        assert store.get("alice_main").data == JPEG
        assert store.count_slot("alice", FieldType.MAIN) == 1


class FailingInsertConnection:
    """Delegates to a real connection but fails every INSERT."""

    def __init__(self, connection):
        self._connection = connection

    def execute(self, query, parameters=None):
        if query.strip().upper().startswith("INSERT"):
            raise duckdb.Error("simulated write failure")
        return self._connection.execute(query, parameters)

    def __getattr__(self, name):
        return getattr(self._connection, name)


class TestGet:
    def test_get_by_exact_name(self, store):
        store.put("alice", FieldType.WELCOME, b"video", "video/webm")

        record = store.get("alice_welcome.webm")

        assert record.mimetype == "video/webm"
        assert record.field_type == FieldType.WELCOME
        assert record.owner_id == "alice"
        assert record.size == 5

    def test_get_without_extension(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")
        assert store.get("alice_main").filename == "alice_main.jpg"

    def test_logical_name_ignores_dotted_owner(self, store):
        store.put("bob_main.x", FieldType.MAIN, JPEG, "image/jpeg")

        with pytest.raises(NotFoundError):
            store.get("bob_main")

        store.put("bob", FieldType.MAIN, PNG, "image/png")
        record = store.get("bob_main")
        assert record.owner_id == "bob"
        assert record.data == PNG

    def test_get_missing(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            store.get("nobody_main.jpg")
        assert exc_info.value.status_code == 404

    def test_get_does_not_match_partial_names(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")
        with pytest.raises(NotFoundError):
            store.get("alice")

    def test_account_id_is_kept(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg", account_id="acct-1")
        assert store.get("alice_main.jpg").account_id == "acct-1"


class TestDelete:
    def test_owner_can_delete(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")

        store.delete("alice_main.jpg", "alice")

        with pytest.raises(NotFoundError):
            store.get("alice_main.jpg")

    def test_non_owner_sees_not_found(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")

        with pytest.raises(NotFoundError) as exc_info:
            store.delete("alice_main.jpg", "bob")

        assert exc_info.value.message == "File not found or access denied"
        assert store.get("alice_main.jpg").data == JPEG

    def test_missing_file_same_error_as_foreign(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            store.delete("ghost_main.jpg", "bob")
        assert exc_info.value.message == "File not found or access denied"

    def test_delete_requires_exact_name(self, store):
        store.put("alice", FieldType.MAIN, JPEG, "image/jpeg")
        with pytest.raises(NotFoundError):
            store.delete("alice_main", "alice")
