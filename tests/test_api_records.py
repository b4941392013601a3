# tests/test_api_records.py
import os

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from gridfactory_db.infra.db import engine
from gridfactory_db.main import app

JOB_UUID = "3a86aacc-2d5f-11dd-80f2-c3b981785945"
JOB_ID = f"https://grid.example.org/gridfactory/jobs/{JOB_UUID}"
READY_UUID = "7f1e2b40-2d60-11dd-9a3c-0019b9f7b3a1"
READY_ID = f"https://grid.example.org/gridfactory/jobs/{READY_UUID}"
NODE_ID = "https://grid.example.org/gridfactory/nodes/node-17"
NEW_NODE_ID = "https://grid.example.org/db/nodes/node-new"


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def jobs(clean_db, insert_row):
    insert_row("jobDefinition", identifier=JOB_ID, name="hello", csStatus="requested",
               userInfo="CN=demo", providerInfo="CN=secret-provider",
               allowedVOs="VO1 VO2", outFileMapping="out.txt gsiftp://se/out.txt")
    insert_row("jobDefinition", identifier=READY_ID, name="claimed", csStatus="ready-forXYZ",
               providerInfo="CN=node-17")


def _dn(subject):
    return {"X-SSL-Client-S-DN": subject}


# ---------- GET 列表 ----------

def test_list_text_is_privacy_filtered(client, jobs):
    r = client.get("/db/jobs/")
    assert r.status_code == 200, r.text
    assert r.headers["content-type"].startswith("text/plain")
    lines = r.text.split("\n")
    header = lines[0].split("\t")
    assert header[-1] == "dbUrl"
    assert "name" in header and "providerInfo" not in header
    assert len(lines) == 3
    rows = {ln.split("\t")[-1]: ln.split("\t") for ln in lines[1:]}
    row = rows[f"https://grid.example.org/db/jobs/{JOB_UUID}"]
    assert len(row) == len(header)
    assert row[header.index("name")] == "hello"
    assert "CN=secret-provider" not in r.text


def test_list_admin_subject_sees_all_fields(client, jobs, monkeypatch):
    monkeypatch.setenv("GF_ADMIN_SUBJECTS", "CN=ops;CN=root")
    r = client.get("/db/jobs/", headers=_dn("CN=root"))
    assert r.status_code == 200
    assert "providerInfo" in r.text.split("\n")[0].split("\t")
    assert "CN=secret-provider" in r.text


def test_list_admin_bearer_token_sees_all_fields(client, jobs):
    token = jwt.encode({"sub": "ops", "role": "admin"}, os.environ["SECRET_KEY"], algorithm="HS256")
    r = client.get("/db/jobs/", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert "CN=secret-provider" in r.text


def test_invalid_bearer_token_is_rejected(client, jobs):
    r = client.get("/db/jobs/", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_list_filters_are_and_combined(client, clean_db, insert_row):
    insert_row("jobDefinition", identifier="https://h/jobs/a1", name="a", csStatus="requested")
    insert_row("jobDefinition", identifier="https://h/jobs/b1", name="b", csStatus="requested")
    insert_row("jobDefinition", identifier="https://h/jobs/a2", name="a", csStatus="running")
    r = client.get("/db/jobs/", params={"csStatus": "requested", "name": "a"})
    assert r.status_code == 200
    lines = r.text.split("\n")
    assert len(lines) == 2
    assert lines[1].endswith("/db/jobs/a1")


def test_list_filter_value_is_not_sql(client, jobs):
    r = client.get("/db/jobs/", params={"name": "x' OR '1'='1"})
    assert r.status_code == 200
    assert len(r.text.split("\n")) == 1


def test_list_unknown_filter_is_bad_request(client, jobs):
    r = client.get("/db/jobs/", params={"bogus": "1"})
    assert r.status_code == 400


def test_list_pagination(client, clean_db, insert_row):
    for i in range(6):
        insert_row("jobDefinition", identifier=f"https://h/jobs/j{i}", name=f"j{i}")
    r = client.get("/db/jobs/?start=2&end=4")
    assert r.status_code == 200
    assert len(r.text.split("\n")) == 1 + 3
    r = client.get("/db/jobs/?end=4")
    assert len(r.text.split("\n")) == 1 + 5
    r = client.get("/db/jobs/?start=2")
    assert r.status_code == 400


def test_list_row_cap(client, clean_db, insert_row, monkeypatch):
    monkeypatch.setenv("GF_MAX_ROWS", "2")
    for i in range(4):
        insert_row("jobDefinition", identifier=f"https://h/jobs/j{i}", name=f"j{i}")
    r = client.get("/db/jobs/")
    assert r.status_code == 200
    assert len(r.text.split("\n")) == 1 + 2


def test_list_xml(client, jobs, monkeypatch):
    monkeypatch.setenv("GF_XSL_URL", "https://grid.example.org/xsl")
    r = client.get("/db/jobs/?format=xml")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/xml")
    assert r.text.startswith('<?xml version="1.0"?>\n'
                             '<?xml-stylesheet type="text/xsl" href="https://grid.example.org/xsl/jobs.xsl"?>\n'
                             '<jobs>')
    assert "<name>hello</name>" in r.text
    assert "<csStatus>ready-forXYZ</csStatus>" in r.text
    assert f"<dbUrl>https://grid.example.org/db/jobs/{JOB_UUID}</dbUrl>" in r.text
    assert "providerInfo" not in r.text


def test_list_history_and_nodes(client, clean_db, insert_row):
    insert_row("jobHistory", identifier="https://h/jobs/old1", name="old", csStatus="done")
    insert_row("nodeInformation", identifier=NODE_ID, host="n17.example.org", providerInfo="CN=n17",
               subnodesDbUrl="https://n17.example.org/db/", maxJobs=4)
    r = client.get("/db/history/?format=xml")
    assert r.status_code == 200
    assert "<history>" in r.text and "<dbUrl>https://grid.example.org/db/history/old1</dbUrl>" in r.text
    r = client.get("/db/nodes/")
    assert r.status_code == 200
    header, row = r.text.split("\n")
    assert "subnodesDbUrl" not in header.split("\t")
    assert "maxJobs" in header.split("\t")
    assert row.endswith("https://grid.example.org/db/nodes/node-17")


def test_node_xml_list_always_shows_highlighted_fields(client, clean_db, insert_row):
    insert_row("nodeInformation", identifier=NODE_ID, host="n17.example.org",
               subnodesDbUrl="https://n17.example.org/db/", providerInfo="CN=n17")
    r = client.get("/db/nodes/?format=xml")
    assert r.status_code == 200
    assert "<host>n17.example.org</host>" in r.text
    assert "<subnodesDbUrl>https://n17.example.org/db/</subnodesDbUrl>" in r.text
    assert "providerInfo" not in r.text


def test_unknown_collection_is_not_found(client):
    assert client.get("/db/widgets/").status_code == 404
    assert client.get("/db/widgets/abc").status_code == 404


# ---------- GET 单条 ----------

def test_get_record_text_is_unfiltered(client, jobs):
    r = client.get(f"/db/jobs/{JOB_UUID}")
    assert r.status_code == 200, r.text
    lines = r.text.split("\n")
    assert f"identifier: {JOB_ID}" in lines
    assert "providerInfo: CN=secret-provider" in lines
    assert lines[-1] == f"dbUrl: https://grid.example.org/db/jobs/{JOB_UUID}"


def test_get_record_trailing_slash(client, jobs):
    assert client.get(f"/db/jobs/{JOB_UUID}/").status_code == 200


def test_get_record_xml(client, jobs):
    r = client.get(f"/db/jobs/{JOB_UUID}?format=xml")
    assert r.status_code == 200
    assert r.text.startswith('<?xml version="1.0"?>\n<job>')
    assert "<allowedVO>VO1</allowedVO>" in r.text and "<allowedVO>VO2</allowedVO>" in r.text
    assert "<source>out.txt</source>" in r.text
    assert "<destination>gsiftp://se/out.txt</destination>" in r.text
    assert "<nodeId>" not in r.text


def test_get_record_not_found(client, jobs):
    assert client.get("/db/jobs/does-not-exist").status_code == 404


def test_get_node_by_identifier_suffix(client, clean_db, insert_row):
    insert_row("nodeInformation", identifier=NODE_ID, host="n17.example.org")
    r = client.get("/db/nodes/node-17?format=xml")
    assert r.status_code == 200
    assert "<node>" in r.text and "<host>n17.example.org</host>" in r.text
    assert f"<identifier>{NODE_ID}</identifier>" in r.text
    # 只匹配完整的最后一段
    assert client.get("/db/nodes/17").status_code == 404


# ---------- PUT 作业 ----------

def test_put_ready_job_status_only_is_allowed(client, jobs, fetch_row):
    r = client.put(f"/db/jobs/{READY_UUID}", content="csStatus: running\nproviderInfo: CN=node-17")
    assert r.status_code == 200, r.text
    assert r.headers["x-rows-affected"] == "1"
    row = fetch_row("jobDefinition", READY_ID)
    assert row["csStatus"] == "running"
    assert row["lastModified"] is not None


def test_put_ready_job_other_field_is_denied(client, jobs, fetch_row):
    r = client.put(f"/db/jobs/{READY_UUID}",
                   content="csStatus: running\nproviderInfo: CN=node-17\nname: evil")
    assert r.status_code == 403
    row = fetch_row("jobDefinition", READY_ID)
    assert row["csStatus"] == "ready-forXYZ" and row["name"] == "claimed"


def test_put_requested_job_any_field(client, jobs, fetch_row):
    r = client.put(f"/db/jobs/{JOB_UUID}", content="name: renamed\nramMb: 1024")
    assert r.status_code == 200
    row = fetch_row("jobDefinition", JOB_ID)
    assert row["name"] == "renamed"


def test_put_missing_job_succeeds_with_zero_rows(client, jobs):
    r = client.put("/db/jobs/no-such-job", content="csStatus: running")
    assert r.status_code == 200
    assert r.headers["x-rows-affected"] == "0"


def test_put_unknown_or_immutable_field(client, jobs):
    assert client.put(f"/db/jobs/{JOB_UUID}", content="bogus: 1").status_code == 400
    assert client.put(f"/db/jobs/{JOB_UUID}", content="identifier: x").status_code == 400


def test_put_history_is_denied(client, clean_db, insert_row):
    insert_row("jobHistory", identifier="https://h/jobs/old1", name="old", csStatus="done")
    r = client.put("/db/history/old1", content="name: new", headers=_dn("CN=alice"))
    assert r.status_code == 403


def test_put_too_large(client, jobs, monkeypatch):
    monkeypatch.setenv("GF_MAX_BODY_BYTES", "16")
    r = client.put(f"/db/jobs/{JOB_UUID}", content="name: " + "x" * 64)
    assert r.status_code == 413


# ---------- PUT 节点 ----------

def _count_nodes():
    with engine.begin() as conn:
        return conn.execute(text('SELECT COUNT(*) FROM "nodeInformation"')).scalar()


def test_put_node_create_then_owner_only(client, clean_db, fetch_row):
    r = client.put("/db/nodes/node-new", content="host: new.example.org\nmaxJobs: 2",
                   headers=_dn("CN=alice"))
    assert r.status_code == 200, r.text
    row = fetch_row("nodeInformation", NEW_NODE_ID)
    assert row["providerInfo"] == "CN=alice"
    assert row["host"] == "new.example.org"
    assert row["created"] is not None
    assert client.get("/db/nodes/node-new").status_code == 200

    r = client.put("/db/nodes/node-new", content="host: hijack", headers=_dn("CN=bob"))
    assert r.status_code == 403
    assert fetch_row("nodeInformation", NEW_NODE_ID)["host"] == "new.example.org"

    r = client.put("/db/nodes/node-new", content="host: moved.example.org", headers=_dn("CN=alice"))
    assert r.status_code == 200
    assert fetch_row("nodeInformation", NEW_NODE_ID)["host"] == "moved.example.org"
    assert _count_nodes() == 1


def test_put_node_owner_cannot_hand_over_provider_info(client, clean_db, fetch_row):
    assert client.put("/db/nodes/node-new", content="host: a", headers=_dn("CN=alice")).status_code == 200

    r = client.put("/db/nodes/node-new", content="providerInfo: CN=bob", headers=_dn("CN=alice"))
    assert r.status_code == 403
    assert fetch_row("nodeInformation", NEW_NODE_ID)["providerInfo"] == "CN=alice"

    # 原样重复自己的身份可以
    r = client.put("/db/nodes/node-new", content="providerInfo: CN=alice\nhost: b", headers=_dn("CN=alice"))
    assert r.status_code == 200
    assert fetch_row("nodeInformation", NEW_NODE_ID)["host"] == "b"


def test_put_node_create_with_foreign_provider_info_is_denied(client, clean_db, fetch_row):
    r = client.put("/db/nodes/node-new", content="host: a\nproviderInfo: CN=bob", headers=_dn("CN=alice"))
    assert r.status_code == 403
    assert fetch_row("nodeInformation", NEW_NODE_ID) is None


def test_put_node_with_path_identifier_checks_owner(client, clean_db, insert_row, fetch_row):
    insert_row("nodeInformation", identifier=NODE_ID, host="n17.example.org", providerInfo="CN=alice")

    r = client.put("/db/nodes/node-17", content="host: hijack", headers=_dn("CN=bob"))
    assert r.status_code == 403
    assert fetch_row("nodeInformation", NODE_ID)["host"] == "n17.example.org"
    assert _count_nodes() == 1

    r = client.put("/db/nodes/node-17", content="host: n17b.example.org", headers=_dn("CN=alice"))
    assert r.status_code == 200
    assert fetch_row("nodeInformation", NODE_ID)["host"] == "n17b.example.org"


def test_put_ambiguous_suffix_is_rejected(client, clean_db, insert_row, fetch_row):
    insert_row("nodeInformation", identifier="https://a.example.org/nodes/n1", providerInfo="CN=alice")
    insert_row("nodeInformation", identifier="https://b.example.org/nodes/n1", providerInfo="CN=bob")
    r = client.put("/db/nodes/n1", content="host: x", headers=_dn("CN=alice"))
    assert r.status_code == 400
    assert fetch_row("nodeInformation", "https://b.example.org/nodes/n1")["host"] is None


def test_put_node_anonymous_create_is_denied(client, clean_db):
    r = client.put("/db/nodes/node-anon", content="host: a")
    assert r.status_code == 403
    assert _count_nodes() == 0


# ---------- 其他方法 ----------

@pytest.mark.parametrize("method,path", [
    ("POST", "/db/jobs/"),
    ("DELETE", f"/db/jobs/{JOB_UUID}"),
    ("PATCH", "/db/nodes/node-17"),
])
def test_other_methods_not_allowed(client, method, path):
    r = client.request(method, path)
    assert r.status_code == 405
    assert r.headers["allow"] == "GET, PUT"


def test_health(client):
    assert client.get("/health").json() == {"ok": True}
