import pydantic
import pytest

from fcr.builders import build_config_artifact, build_worker_process
from fcr.errors import AlreadyExists, NotFound, OwnershipError
from fcr.objects import CLIENT, CONFIG_ARTIFACT, WORKER_PROCESS, ObjectKey, ObjectMeta, set_controller_reference


def test_object_key_parse():
    assert ObjectKey.parse("team-b/edge") == ObjectKey("team-b", "edge")
    assert ObjectKey.parse("edge") == ObjectKey("default", "edge")
    assert str(ObjectKey("default", "edge")) == "default/edge"
    with pytest.raises(ValueError):
        ObjectKey.parse("Bad_Name")


def test_names_must_be_dns_labels():
    with pytest.raises(pydantic.ValidationError):
        ObjectMeta(name="-edge")


def test_controller_reference_rules(store, make_client):
    artifact = build_config_artifact("edge", "default", "")
    with pytest.raises(OwnershipError):
        set_controller_reference(artifact, make_client())  # parent not persisted

    owner = store.create(make_client())
    set_controller_reference(artifact, owner)
    set_controller_reference(artifact, owner)
    assert len(artifact.metadata.owner_references) == 1

    other = store.create(make_client(name="core"))
    with pytest.raises(OwnershipError):
        set_controller_reference(artifact, other)

    foreign = store.create(make_client(namespace="team-b"))
    with pytest.raises(OwnershipError):
        set_controller_reference(build_config_artifact("edge", "default", ""), foreign)


def test_memory_store_copies_and_conflicts(store, make_client):
    created = store.create(make_client())
    created.spec.server.port = 1
    assert store.get(CLIENT, created.key).spec.server.port == 7000

    with pytest.raises(AlreadyExists):
        store.create(make_client())
    with pytest.raises(NotFound):
        store.update(make_client(name="core"))


def test_memory_store_cascading_delete(store, make_client):
    client = store.create(make_client())
    unrelated = store.create(make_client(name="core"))
    for parent in (client, unrelated):
        artifact = build_config_artifact(parent.metadata.name, "default", "")
        store.set_owner(artifact, parent)
        store.create(artifact)
        worker = build_worker_process(parent.metadata.name, "default", "img")
        store.set_owner(worker, parent)
        store.create(worker)

    store.delete(CLIENT, client.key)

    assert [a.metadata.name for a in store.list(CONFIG_ARTIFACT)] == ["core"]
    assert [w.metadata.name for w in store.list(WORKER_PROCESS)] == ["core"]
    with pytest.raises(NotFound):
        store.delete(CLIENT, client.key)
