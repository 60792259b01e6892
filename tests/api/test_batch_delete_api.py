from __future__ import annotations

from xml.etree.ElementTree import fromstring

NS = "{http://s3.amazonaws.com/doc/2006-03-01/}"


def delete_body(*keys: str, quiet: bool = False, namespaced: bool = True) -> bytes:
    xmlns = f' xmlns="{NS[1:-1]}"' if namespaced else ""
    objects = "".join(f"<Object><Key>{key}</Key></Object>" for key in keys)
    quiet_el = "<Quiet>true</Quiet>" if quiet else ""
    return f'<?xml version="1.0" encoding="UTF-8"?><Delete{xmlns}>{quiet_el}{objects}</Delete>'.encode()


def test_batch_delete_skips_missing_keys(client, bucket, upload):
    upload(bucket, "a.txt", b"a")
    upload(bucket, "b.txt", b"b")

    r = client.post(f"/{bucket}/?delete", content=delete_body("a.txt", "ghost.txt", "b.txt"))

    assert r.status_code == 200
    root = fromstring(r.content)
    assert root.tag == f"{NS}DeleteResult"
    deleted = [el.findtext(f"{NS}Key") for el in root.findall(f"{NS}Deleted")]
    assert deleted == ["a.txt", "b.txt"]
    assert client.head(f"/{bucket}/a.txt").status_code == 404
    assert client.head(f"/{bucket}/b.txt").status_code == 404


def test_batch_delete_accepts_bare_document(client, bucket, upload):
    upload(bucket, "dir/x.bin", b"x")
    r = client.post(f"/{bucket}?delete", content=delete_body("dir/x.bin", namespaced=False))
    assert r.status_code == 200
    deleted = [el.text for el in fromstring(r.content).iter(f"{NS}Key")]
    assert deleted == ["dir/x.bin"]


def test_batch_delete_quiet(client, bucket, upload):
    upload(bucket, "a.txt", b"a")
    r = client.post(f"/{bucket}?delete", content=delete_body("a.txt", quiet=True))
    assert r.status_code == 200
    assert fromstring(r.content).findall(f"{NS}Deleted") == []
    assert client.head(f"/{bucket}/a.txt").status_code == 404


def test_batch_delete_malformed_xml(client, bucket):
    r = client.post(f"/{bucket}?delete", content=b"<Delete><Object>")
    assert r.status_code == 400
    assert fromstring(r.content).findtext("Code") == "MalformedXML"


def test_batch_delete_rejects_entities(client, bucket):
    body = b'<?xml version="1.0"?><!DOCTYPE d [<!ENTITY x "y">]><Delete><Object><Key>&x;</Key></Object></Delete>'
    r = client.post(f"/{bucket}?delete", content=body)
    assert r.status_code == 400
    assert fromstring(r.content).findtext("Code") == "MalformedXML"


def test_batch_delete_missing_bucket(client):
    r = client.post("/missing?delete", content=delete_body("a"))
    assert r.status_code == 404
    assert fromstring(r.content).findtext("Code") == "NoSuchBucket"


def test_post_without_delete_subresource(client, bucket):
    r = client.post(f"/{bucket}", content=b"")
    assert r.status_code == 405
    assert fromstring(r.content).findtext("Code") == "MethodNotAllowed"


def test_batch_delete_invalid_key_deletes_nothing(client, bucket, upload):
    upload(bucket, "one.txt", b"1")

    r = client.post(f"/{bucket}?delete", content=delete_body("one.txt", "../escape"))

    assert r.status_code == 400
    assert fromstring(r.content).findtext("Code") == "InvalidObjectName"
    assert client.head(f"/{bucket}/one.txt").status_code == 200
