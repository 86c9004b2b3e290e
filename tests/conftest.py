import pytest


def make_field(name, type="string", reference_to=(), relationship_name=None, **flags):
    """Build one entry of a describe 'fields' list."""
    return {
        "name": name,
        "type": type,
        "referenceTo": list(reference_to),
        "relationshipName": relationship_name,
        "idLookup": flags.get("id_lookup", False),
        "nameField": flags.get("name_field", False),
    }


def make_sobject(name, fields, queryable=True, createable=True):
    return {"name": name, "fields": fields, "queryable": queryable, "createable": createable}


class FakeAPI:
    """In-memory stand-in for SalesforceAPI.

    ``records`` maps object name -> list of record dicts returned by queries;
    names in ``failing`` raise from the query iterator; ``fail_after`` maps
    object name -> number of records yielded before the iterator raises.
    """

    def __init__(self, describes=(), records=None, failing=(), sobjects=None, fail_after=None):
        self.describes = {d["name"].lower(): d for d in describes}
        self.sobjects = sobjects
        self.records = records or {}
        self.failing = set(failing)
        self.fail_after = fail_after or {}
        self.connected = False
        self.queries = []
        self.describe_calls = []
        self.downloads = []

    def connect(self):
        self.connected = True

    def describe_global(self):
        if self.sobjects is not None:
            return {"sobjects": self.sobjects}
        return {
            "sobjects": [
                {"name": d["name"], "queryable": d["queryable"], "createable": d["createable"]}
                for d in self.describes.values()
            ]
        }

    def describe_objects(self, names):
        self.describe_calls.append(list(names))
        return [self.describes[n.lower()] for n in names if n.lower() in self.describes]

    def query_all_iter(self, soql):
        self.queries.append(soql)
        obj = soql.split(" FROM ")[1].split(" ")[0]
        if obj in self.failing:
            raise RuntimeError(f"INVALID_TYPE: sObject type '{obj}' is not supported")
        limit = self.fail_after.get(obj)
        for i, r in enumerate(self.records.get(obj, [])):
            if limit is not None and i >= limit:
                break
            yield dict(r)
        if limit is not None:
            raise RuntimeError("QUERY_TIMEOUT: query cursor expired")

    def download_path_to_file(self, rel_path, target):
        data = b"downloaded:" + rel_path.encode()
        with open(target, "wb") as f:
            f.write(data)
        self.downloads.append((rel_path, target))
        return len(data)


@pytest.fixture
def field():
    return make_field


@pytest.fixture
def sobject():
    return make_sobject


@pytest.fixture
def fake_api_cls():
    return FakeAPI


@pytest.fixture
def account_describe():
    """Account with a User lookup (not expanded) and a self lookup (expanded)."""
    return make_sobject(
        "Account",
        [
            make_field("Id", "id"),
            make_field("Name", "string", name_field=True),
            make_field("OwnerId", "reference", ["User"], "Owner"),
            make_field("ParentId", "reference", ["Account"], "Parent"),
        ],
    )


@pytest.fixture(autouse=True)
def _no_real_env(monkeypatch):
    """Keep developer SF_* variables out of the tests."""
    for key in (
        "SF_AUTH_FLOW",
        "SF_LOGIN_URL",
        "SF_CLIENT_ID",
        "SF_CLIENT_SECRET",
        "SF_USERNAME",
        "SF_PASSWORD",
        "SF_SECURITY_TOKEN",
        "SF_ACCESS_TOKEN",
        "SF_INSTANCE_URL",
        "SF_API_VERSION",
    ):
        monkeypatch.delenv(key, raising=False)
