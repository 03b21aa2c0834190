"""Tests for the multipart storage backend."""

import json
from unittest.mock import MagicMock, patch
from urllib.parse import urlsplit

import pytest
from botocore.exceptions import ClientError

from mpupload.infra.storage.client import (
    CommitError,
    DecodeError,
    MultipartCapable,
    PlanningError,
    SessionError,
    SigningError,
    URLError,
)
from mpupload.infra.storage.multipart import (
    MAX_LOGGED_PAYLOAD,
    MultipartObjectStorage,
    rewrite_public_url,
)
from mpupload.infra.storage.s3_client import S3ObjectStorage

SIGNED_GET = (
    "https://test-bucket.obs.example.com/lfs/ab/cd/object"
    "?AWSAccessKeyId=test-key&Expires=1700000000&Signature=abc%2Bdef%3D"
)


def _part_url(_operation, Params, ExpiresIn):
    return (
        f"https://test-bucket.obs.example.com/{Params['Key']}"
        f"?partNumber={Params['PartNumber']}&uploadId={Params['UploadId']}"
        f"&Expires={ExpiresIn}&Signature=sig"
    )


class TestMultipartObjectStorage:
    @pytest.fixture
    def delegate_s3(self):
        mock_client = MagicMock()
        with patch.object(S3ObjectStorage, "_build_client", return_value=mock_client):
            yield mock_client

    @pytest.fixture
    def mock_s3(self, delegate_s3):
        mock_client = MagicMock()
        mock_client.create_multipart_upload.return_value = {"UploadId": "upload-1"}
        mock_client.generate_presigned_url.side_effect = _part_url
        with patch.object(
            MultipartObjectStorage, "_build_client", return_value=mock_client
        ):
            yield mock_client

    @pytest.fixture
    def storage(self, mock_s3, settings):
        return MultipartObjectStorage(settings=settings)

    def test_is_multipart_capable(self, storage):
        assert isinstance(storage, MultipartCapable)

    def test_plan_concrete_scenario(self, storage, mock_s3):
        plan = storage.generate_multipart_parts("ab/cd/object", 45_000_000)

        mock_s3.create_multipart_upload.assert_called_once_with(
            Bucket="test-bucket", Key="lfs/ab/cd/object"
        )
        assert plan.upload_id == "upload-1"
        assert plan.session.total_size == 45_000_000
        assert [(p.index, p.offset, p.length) for p in plan.parts] == [
            (1, 0, 20_000_000),
            (2, 20_000_000, 20_000_000),
            (3, 40_000_000, 5_000_000),
        ]
        assert plan.abort is None

    def test_part_endpoints_bind_session_and_slot(self, storage, mock_s3):
        plan = storage.generate_multipart_parts("ab/cd/object", 45_000_000)

        for part in plan.parts:
            assert part.endpoint.method == "PUT"
            assert part.endpoint.expires_in == 1800
            assert f"partNumber={part.index}" in part.endpoint.href
            assert "uploadId=upload-1" in part.endpoint.href

        first_call = mock_s3.generate_presigned_url.call_args_list[0]
        assert first_call[0][0] == "upload_part"
        assert first_call[1]["Params"] == {
            "Bucket": "test-bucket",
            "Key": "lfs/ab/cd/object",
            "UploadId": "upload-1",
            "PartNumber": 1,
        }
        assert first_call[1]["ExpiresIn"] == 1800

    def test_part_wire_shape(self, storage):
        plan = storage.generate_multipart_parts("ab/cd/object", 5)

        wire = plan.parts[0].to_dict()

        assert wire["index"] == 1
        assert wire["pos"] == 0
        assert wire["size"] == 5
        assert set(wire["endpoint"]) == {"expires_in", "href", "method"}

    def test_verify_descriptor(self, storage):
        plan = storage.generate_multipart_parts("ab/cd/object", 5)

        assert plan.verify.to_dict() == {
            "params": {"upload_id": "upload-1"},
            "aggregation_params": {
                "key": "part_ids",
                "type": "array",
                "item": "index,etag",
            },
        }

    def test_parallel_signing_keeps_index_order(self, mock_s3, settings):
        settings.MULTIPART_SIGN_WORKERS = 4
        settings.MULTIPART_CHUNK_SIZE = 10
        storage = MultipartObjectStorage(settings=settings)

        plan = storage.generate_multipart_parts("obj", 95)

        assert [p.index for p in plan.parts] == list(range(1, 11))
        assert plan.parts[-1].length == 5

    @pytest.mark.parametrize("size", [0, -5])
    def test_plan_rejects_non_positive_size_before_store_call(
        self, storage, mock_s3, size
    ):
        with pytest.raises(PlanningError, match="size must be positive"):
            storage.generate_multipart_parts("obj", size)

        mock_s3.create_multipart_upload.assert_not_called()

    def test_plan_rejects_too_many_parts(self, mock_s3, settings):
        settings.MULTIPART_CHUNK_SIZE = 1
        storage = MultipartObjectStorage(settings=settings)

        with pytest.raises(PlanningError, match="10001 parts"):
            storage.generate_multipart_parts("obj", 10_001)

        mock_s3.create_multipart_upload.assert_not_called()

    def test_session_failure(self, storage, mock_s3):
        mock_s3.create_multipart_upload.side_effect = Exception("access denied")

        with pytest.raises(SessionError, match="access denied"):
            storage.generate_multipart_parts("obj", 10)

        mock_s3.generate_presigned_url.assert_not_called()

    def test_session_missing_upload_id(self, storage, mock_s3):
        mock_s3.create_multipart_upload.return_value = {}

        with pytest.raises(SessionError, match="missing UploadId"):
            storage.generate_multipart_parts("obj", 10)

    def test_signing_failure_names_part(self, storage, mock_s3):
        mock_s3.generate_presigned_url.side_effect = [
            "https://signed/1",
            Exception("clock skew"),
        ]

        with pytest.raises(SigningError, match="part 2: clock skew"):
            storage.generate_multipart_parts("obj", 45_000_000)

    def test_signing_empty_url(self, storage, mock_s3):
        mock_s3.generate_presigned_url.side_effect = None
        mock_s3.generate_presigned_url.return_value = ""

        with pytest.raises(SigningError, match="is empty"):
            storage.generate_multipart_parts("obj", 10)

    def test_commit_sorts_parts(self, storage, mock_s3):
        raw = json.dumps(
            {
                "upload_id": "upload-1",
                "part_ids": [
                    {"etag": '"e3"', "index": 3},
                    {"etag": '"e1"', "index": 1},
                    {"etag": '"e2"', "index": 2},
                ],
            }
        )

        commit = storage.commit_upload("ab/cd/object", raw)

        assert commit.upload_id == "upload-1"
        mock_s3.complete_multipart_upload.assert_called_once_with(
            Bucket="test-bucket",
            Key="lfs/ab/cd/object",
            UploadId="upload-1",
            MultipartUpload={
                "Parts": [
                    {"ETag": '"e1"', "PartNumber": 1},
                    {"ETag": '"e2"', "PartNumber": 2},
                    {"ETag": '"e3"', "PartNumber": 3},
                ]
            },
        )

    @pytest.mark.parametrize(
        "raw",
        [
            b'{"part_ids": [{"etag": "e", "index": 1}]}',
            b'{"upload_id": "u", "part_ids": "nope"}',
            b"{",
        ],
    )
    def test_commit_decode_error_makes_no_store_call(self, storage, mock_s3, raw):
        with pytest.raises(DecodeError):
            storage.commit_upload("obj", raw)

        mock_s3.complete_multipart_upload.assert_not_called()

    def test_commit_decode_error_logs_truncated_body(self, storage, mock_s3):
        raw = b"{" + b"x" * 10_000

        with patch("mpupload.infra.storage.multipart.logger") as log:
            with pytest.raises(DecodeError):
                storage.commit_upload("obj", raw)

        _message, length, logged = log.error.call_args.args
        assert length == len(raw)
        assert logged == raw[:MAX_LOGGED_PAYLOAD]

    def test_commit_store_rejection_propagates(self, storage, mock_s3):
        store_error = ClientError(
            {"Error": {"Code": "InvalidPart", "Message": "One or more parts missing"}},
            "CompleteMultipartUpload",
        )
        mock_s3.complete_multipart_upload.side_effect = store_error

        with pytest.raises(CommitError, match="InvalidPart") as exc_info:
            storage.commit_upload(
                "obj", b'{"upload_id": "u", "part_ids": [{"etag": "e", "index": 1}]}'
            )

        assert exc_info.value.__cause__ is store_error
        assert mock_s3.complete_multipart_upload.call_count == 1
        mock_s3.abort_multipart_upload.assert_not_called()

    def test_download_url_rewrites_host_and_scheme(self, storage, mock_s3):
        mock_s3.generate_presigned_url.side_effect = None
        mock_s3.generate_presigned_url.return_value = SIGNED_GET

        url = storage.url("ab/cd/object", "object.bin")

        original = urlsplit(SIGNED_GET)
        issued = urlsplit(url)
        assert issued.scheme == "http"
        assert issued.netloc == "cdn.example.com"
        assert issued.path == original.path
        assert issued.query == original.query
        call_args = mock_s3.generate_presigned_url.call_args
        assert call_args[0][0] == "get_object"
        assert call_args[1]["ExpiresIn"] == 3600
        assert call_args[1]["Params"]["Key"] == "lfs/ab/cd/object"

    def test_download_url_without_domain_is_unchanged(self, mock_s3, settings):
        settings.STORAGE_BUCKET_DOMAIN = None
        storage = MultipartObjectStorage(settings=settings)
        mock_s3.generate_presigned_url.side_effect = None
        mock_s3.generate_presigned_url.return_value = SIGNED_GET

        assert storage.url("ab/cd/object") == SIGNED_GET

    def test_download_url_sign_failure(self, storage, mock_s3):
        mock_s3.generate_presigned_url.side_effect = Exception("S3 error")

        with pytest.raises(URLError, match="Failed to generate download URL"):
            storage.url("obj")

    def test_forwards_plain_operations_to_delegate(self, storage, delegate_s3):
        storage.delete("ab/cd/object")
        storage.save("ab/cd/object", b"data")

        delegate_s3.delete_object.assert_called_once_with(
            Bucket="test-bucket", Key="lfs/ab/cd/object"
        )
        delegate_s3.put_object.assert_called_once()

    def test_uses_supplied_delegate(self, mock_s3, settings):
        delegate = MagicMock()
        delegate.bucket = "other-bucket"
        delegate.build_path.side_effect = lambda p: f"custom/{p}"
        storage = MultipartObjectStorage(settings=settings, delegate=delegate)

        storage.stat("x")
        storage.generate_multipart_parts("x", 1)

        delegate.stat.assert_called_once_with("x")
        mock_s3.create_multipart_upload.assert_called_once_with(
            Bucket="other-bucket", Key="custom/x"
        )


class TestRewritePublicUrl:
    def test_keeps_path_and_query(self):
        url = rewrite_public_url(SIGNED_GET, domain="files.example.org", scheme="http")

        assert url == (
            "http://files.example.org/lfs/ab/cd/object"
            "?AWSAccessKeyId=test-key&Expires=1700000000&Signature=abc%2Bdef%3D"
        )

    def test_rejects_url_without_host(self):
        with pytest.raises(URLError, match="no host"):
            rewrite_public_url("/just/a/path", domain="d", scheme="http")
