from __future__ import annotations

from xml.etree.ElementTree import fromstring

NS = "{http://s3.amazonaws.com/doc/2006-03-01/}"


def test_list_buckets_empty(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/xml")
    root = fromstring(r.content)
    assert root.tag == f"{NS}ListAllMyBucketsResult"
    assert root.findall(f"{NS}Buckets/{NS}Bucket") == []


def test_create_bucket_then_list(client):
    r = client.put("/alpha")
    assert r.status_code == 200
    assert r.headers["location"] == "/alpha"
    client.put("/beta/")

    root = fromstring(client.get("/").content)
    names = [el.text for el in root.iter(f"{NS}Name")]
    assert names == ["alpha", "beta"]
    dates = [el.text for el in root.iter(f"{NS}CreationDate")]
    assert all(d.endswith("Z") for d in dates)


def test_create_existing_bucket_conflicts(client, bucket):
    r = client.put(f"/{bucket}")
    assert r.status_code == 409
    root = fromstring(r.content)
    assert root.findtext("Code") == "BucketAlreadyExists"
    assert root.findtext("BucketName") == bucket


def test_head_bucket(client, bucket):
    assert client.head(f"/{bucket}").status_code == 200
    assert client.head(f"/{bucket}/").status_code == 200
    assert client.head("/missing").status_code == 404


def test_get_bucket_without_params_confirms_existence(client, bucket):
    r = client.get(f"/{bucket}/")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert bucket in r.text


def test_get_missing_bucket(client):
    r = client.get("/missing")
    assert r.status_code == 404
    assert fromstring(r.content).findtext("Code") == "NoSuchBucket"


def test_delete_bucket(client, bucket):
    assert client.delete(f"/{bucket}/").status_code == 204
    assert client.head(f"/{bucket}").status_code == 404


def test_delete_missing_bucket(client):
    r = client.delete("/missing")
    assert r.status_code == 404
    root = fromstring(r.content)
    assert root.findtext("Code") == "NoSuchBucket"
    assert root.findtext("BucketName") == "missing"


def test_location_stub(client):
    r = client.get("/anything?location")
    assert r.status_code == 200
    root = fromstring(r.content)
    assert root.tag == f"{NS}LocationConstraint"
    assert root.text == "us-east-1"


def test_object_lock_stub(client):
    root = fromstring(client.get("/anything?object-lock").content)
    assert root.tag == "Bucket"
    assert root.findtext("Name") == "anything"
    assert root.findtext("ObjectLockConfiguration") == "true"
    assert root.findtext("CreationDate") == "2024-09-16T10:12:24.000Z"


def test_delimiter_stub(client):
    root = fromstring(client.get("/anything/?delimiter=/").content)
    assert root.findtext("ObjectDelimiter") == "true"


def test_list_objects(client, bucket, upload):
    for key in ["b.txt", "a.txt", "dir/c.txt"]:
        assert upload(bucket, key, b"12345").status_code == 200

    r = client.get(f"/{bucket}?list-type=2")
    assert r.status_code == 200
    root = fromstring(r.content)
    assert root.findtext(f"{NS}Name") == bucket
    assert root.findtext(f"{NS}IsTruncated") == "false"
    assert root.findtext(f"{NS}MaxKeys") == "1000"
    keys = [el.findtext(f"{NS}Key") for el in root.findall(f"{NS}Contents")]
    assert keys == ["a.txt", "b.txt", "dir/c.txt"]
    sizes = {el.findtext(f"{NS}Size") for el in root.findall(f"{NS}Contents")}
    assert sizes == {"5"}


def test_list_objects_prefix_and_truncation(client, bucket, upload):
    for key in ["logs/1", "logs/2", "logs/3", "other"]:
        upload(bucket, key, b"x")

    r = client.get(f"/{bucket}/", params={"prefix": "logs/", "max-keys": "2"})
    root = fromstring(r.content)
    keys = [el.findtext(f"{NS}Key") for el in root.findall(f"{NS}Contents")]
    assert keys == ["logs/1", "logs/2"]
    assert root.findtext(f"{NS}IsTruncated") == "true"
    assert root.findtext(f"{NS}NextMarker") == "logs/2"

    r = client.get(f"/{bucket}/", params={"prefix": "logs/", "marker": "logs/2"})
    keys = [el.findtext(f"{NS}Key") for el in fromstring(r.content).findall(f"{NS}Contents")]
    assert keys == ["logs/3"]


def test_list_objects_invalid_max_keys(client, bucket):
    r = client.get(f"/{bucket}?max-keys=many")
    assert r.status_code == 400
    assert fromstring(r.content).findtext("Code") == "InvalidArgument"


def test_list_objects_missing_bucket(client):
    r = client.get("/missing?prefix=")
    assert r.status_code == 404
    assert fromstring(r.content).findtext("Code") == "NoSuchBucket"
