import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from adapters import aws
from adapters.aws import AWSStorageAdapter
from common.exceptions import AuthenticationError, TransportError
from conftest import FakeS3Client, make_target


@pytest.fixture
def s3(monkeypatch, backup_keys):
    client = FakeS3Client(backup_keys)
    monkeypatch.setattr(aws, "_s3_client", lambda target: client)
    return client


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "ListObjectsV2")


def test_backup_found_as_common_prefix(s3):
    assert AWSStorageAdapter().is_object_in_bucket(make_target("aws"), "backup-1") is True
    assert s3.list_calls[0] == {
        "Bucket": "e2e-bucket",
        "Delimiter": "/",
        "Prefix": "velero/backups/",
    }


def test_neighbouring_backup_name_does_not_match(monkeypatch):
    client = FakeS3Client(["velero/backups/backup-10/b.tar"])
    monkeypatch.setattr(aws, "_s3_client", lambda target: client)

    assert AWSStorageAdapter().is_object_in_bucket(make_target("aws"), "backup-1") is False


def test_missing_backup_returns_false(s3):
    assert AWSStorageAdapter().is_object_in_bucket(make_target("aws"), "backup-2") is False


def test_prefix_itself_is_ignored(monkeypatch):
    client = FakeS3Client(["velero/backups/"])
    monkeypatch.setattr(aws, "_s3_client", lambda target: client)

    assert AWSStorageAdapter().is_object_in_bucket(make_target("aws"), "backup-1") is False


def test_empty_prefix_is_not_sent(s3):
    AWSStorageAdapter().is_object_in_bucket(make_target("aws", prefix=""), "backup-1")

    assert "Prefix" not in s3.list_calls[0]


@pytest.mark.parametrize("code", ["InvalidAccessKeyId", "SignatureDoesNotMatch", "AccessDenied"])
def test_rejected_credentials_raise_authentication_error(s3, code):
    s3.list_error = _client_error(code)

    with pytest.raises(AuthenticationError) as excinfo:
        AWSStorageAdapter().is_object_in_bucket(make_target("aws"), "backup-1")

    assert excinfo.value.details["bucket"] == "e2e-bucket"
    assert excinfo.value.details["object_key"] == "backup-1"
    assert excinfo.value.details["error_code"] == code


def test_missing_credentials_raise_authentication_error(s3):
    s3.list_error = NoCredentialsError()

    with pytest.raises(AuthenticationError):
        AWSStorageAdapter().is_object_in_bucket(make_target("aws"), "backup-1")


def test_listing_failures_raise_transport_error(s3):
    s3.list_error = _client_error("NoSuchBucket")

    with pytest.raises(TransportError) as excinfo:
        AWSStorageAdapter().is_object_in_bucket(make_target("aws"), "backup-1")
    assert excinfo.value.details["prefix"] == "velero/backups/"


def test_connection_failures_raise_transport_error(s3):
    s3.list_error = EndpointConnectionError(endpoint_url="https://s3.example.invalid")

    with pytest.raises(TransportError):
        AWSStorageAdapter().is_object_in_bucket(make_target("aws"), "backup-1")


def test_delete_removes_only_the_backup_folder(s3):
    AWSStorageAdapter().delete_objects_in_bucket(make_target("aws"), "backup-1")

    assert s3.keys == [
        "velero/backups/backup-10/b.tar",
        "velero/restores/restore-1/c.tar",
    ]
    assert "Delimiter" not in s3.list_calls[0]


def test_delete_without_matches_is_a_noop(s3):
    AWSStorageAdapter().delete_objects_in_bucket(make_target("aws"), "backup-404")

    assert s3.delete_calls == []


def test_delete_is_batched(monkeypatch):
    keys = [f"velero/backups/big/part-{i:05d}" for i in range(aws.DELETE_BATCH_SIZE + 5)]
    client = FakeS3Client(keys)
    monkeypatch.setattr(aws, "_s3_client", lambda target: client)

    AWSStorageAdapter().delete_objects_in_bucket(make_target("aws"), "big")

    assert [len(call["Delete"]["Objects"]) for call in client.delete_calls] == [aws.DELETE_BATCH_SIZE, 5]
    assert client.keys == []


def test_partial_delete_failure_is_reported(s3):
    s3.delete_errors = [{"Key": "velero/backups/backup-1/a.tar", "Code": "AccessDenied", "Message": "denied"}]

    with pytest.raises(TransportError) as excinfo:
        AWSStorageAdapter().delete_objects_in_bucket(make_target("aws"), "backup-1")

    assert excinfo.value.details["key"] == "velero/backups/backup-1/a.tar"
    assert excinfo.value.details["error_code"] == "AccessDenied"


class _RecordingSession:
    created = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.client_kwargs = None
        _RecordingSession.created.append(self)

    def client(self, service, **kwargs):
        self.client_kwargs = {"service": service, **kwargs}
        return object()


def test_client_uses_location_config(monkeypatch, tmp_path):
    _RecordingSession.created = []
    monkeypatch.setattr(aws.boto3.session, "Session", _RecordingSession)
    creds = tmp_path / "credentials-velero"
    creds.write_text("[minio]\naws_access_key_id = a\naws_secret_access_key = b\n")

    target = make_target(
        "vsphere",
        credentials_file=str(creds),
        config={"profile": "minio", "region": "minio", "s3Url": "http://minio:9000", "s3ForcePathStyle": "true"},
    )
    aws._s3_client(target)

    session = _RecordingSession.created[-1]
    assert session.kwargs["profile_name"] == "minio"
    assert session.kwargs["region_name"] == "minio"
    assert session.kwargs["botocore_session"].get_config_variable("credentials_file") == str(creds)
    assert session.client_kwargs["service"] == "s3"
    assert session.client_kwargs["endpoint_url"] == "http://minio:9000"
    assert session.client_kwargs["config"].s3 == {"addressing_style": "path"}


def test_target_region_wins_over_config(monkeypatch):
    _RecordingSession.created = []
    monkeypatch.setattr(aws.boto3.session, "Session", _RecordingSession)

    aws._s3_client(make_target("aws", region="us-west-1", config={"region": "eu-central-1"}))

    session = _RecordingSession.created[-1]
    assert session.kwargs["region_name"] == "us-west-1"
    assert session.kwargs["profile_name"] is None
    assert session.client_kwargs["endpoint_url"] is None
    assert session.client_kwargs["config"] is None
