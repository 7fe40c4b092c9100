import io

import pytest

from raftkit.config import Action, Config, Configs, Node
from raftkit.errors import PlainError


def bootstrapped_config():
    config = Config()
    for nid in (1, 2, 3):
        config.add_voter(nid, f"localhost:{7000 + nid}")
    config.index, config.term = 1, 1
    return config


# ---- Action ---------------------------------------------------------------


@pytest.mark.parametrize(
    "action,name",
    [
        (Action.NONE, "none"),
        (Action.PROMOTE, "promote"),
        (Action.DEMOTE, "demote"),
        (Action.REMOVE, "remove"),
        (Action.FORCE_REMOVE, "forceRemove"),
    ],
)
def test_action_names_round_trip(action, name):
    assert str(action) == name
    assert Action.from_name(name) is action
    assert Action.from_json(action.to_json()) is action


def test_action_to_json_is_quoted_name():
    assert Action.FORCE_REMOVE.to_json() == '"forceRemove"'


def test_action_from_json_null_is_none():
    assert Action.from_json("null") is Action.NONE
    assert Action.from_json(b"null") is Action.NONE


def test_action_from_json_requires_string():
    with pytest.raises(PlainError, match="configAction must be json string"):
        Action.from_json("3")


def test_action_from_json_rejects_unknown_name():
    with pytest.raises(PlainError, match="is not a valid configAction"):
        Action.from_json('"explode"')


def test_unknown_action_value_is_kept():
    action = Action(9)
    assert int(action) == 9
    assert str(action) == "Action(9)"


# ---- Node -----------------------------------------------------------------


@pytest.mark.parametrize(
    "voter,action,expected",
    [
        (True, Action.NONE, Action.NONE),
        (True, Action.DEMOTE, Action.DEMOTE),
        (True, Action.REMOVE, Action.DEMOTE),
        (True, Action.FORCE_REMOVE, Action.FORCE_REMOVE),
        (False, Action.NONE, Action.NONE),
        (False, Action.PROMOTE, Action.PROMOTE),
        (False, Action.REMOVE, Action.REMOVE),
        (False, Action.FORCE_REMOVE, Action.FORCE_REMOVE),
    ],
)
def test_node_next_action(voter, action, expected):
    assert Node(id=1, addr="h:1", voter=voter, action=action).next_action() is expected


def test_node_wire_bytes():
    buf = io.BytesIO()
    Node(id=1, addr="a:1", voter=True, action=Action.PROMOTE).encode(buf)
    assert buf.getvalue() == (
        b"\x01\x00\x00\x00\x00\x00\x00\x00"
        b"\x03\x00\x00\x00a:1"
        b"\x01"
        b"\x00\x00\x00\x00"
        b"\x01"
    )


def test_node_round_trip():
    node = Node(id=42, addr="localhost:7001", voter=False, data="x", action=Action.REMOVE)
    buf = io.BytesIO()
    node.encode(buf)
    buf.seek(0)
    assert Node.decode(buf) == node
    assert buf.read() == b""


def test_node_decode_truncated_raises():
    buf = io.BytesIO()
    Node(id=1, addr="a:1").encode(buf)
    with pytest.raises(EOFError):
        Node.decode(io.BytesIO(buf.getvalue()[:-1]))


@pytest.mark.parametrize(
    "node,message",
    [
        (Node(id=0, addr="localhost:1"), "id must be greater than zero"),
        (Node(id=1, addr=""), "empty address"),
        (Node(id=1, addr="localhost"), "invalid address localhost"),
        (Node(id=1, addr="localhost:"), "port must be specified"),
        (Node(id=1, addr="localhost:x"), "port must be specified"),
        (Node(id=1, addr="localhost:0"), "invalid port"),
        (Node(id=1, addr="a:b:1"), "invalid address"),
        (Node(id=1, addr="h:1", voter=True, action=Action.PROMOTE), "voter can't be promoted"),
        (Node(id=1, addr="h:1", action=Action.DEMOTE), "nonvoter can't be demoted"),
    ],
)
def test_node_validate_errors(node, message):
    with pytest.raises(PlainError, match=message):
        node.validate()


@pytest.mark.parametrize("addr", ["localhost:8080", ":80", "[::1]:9000"])
def test_node_validate_accepts(addr):
    node = Node(id=1, addr=addr, voter=True)
    node.validate()
    assert node.addr == addr


# ---- Config: validations carried over ---------------------------------------


def test_change_config_validations():
    config = bootstrapped_config()
    before = config.clone()

    with pytest.raises(PlainError):
        config.add_nonvoter(0, "localhost:8888", False)
    with pytest.raises(PlainError, match="bootstrapped config"):
        config.add_voter(4, "localhost:2222")
    with pytest.raises(PlainError, match="node 4 not found"):
        config.set_action(4, Action.PROMOTE)
    with pytest.raises(PlainError, match="voter can't be promoted"):
        config.set_action(3, Action.PROMOTE)
    with pytest.raises(PlainError, match="node 4 not found"):
        config.set_addr(4, "localhost:2222")
    with pytest.raises(PlainError):
        config.set_addr(3, "localhost")
    with pytest.raises(PlainError, match="is used by node 2"):
        config.set_addr(3, "localhost:7002")
    with pytest.raises(PlainError, match="node 4 not found"):
        config.set_data(4, "localhost:2222")
    with pytest.raises(PlainError, match="empty address"):
        config.add_nonvoter(10, "", False)
    for nid in list(config.nodes):
        with pytest.raises(PlainError, match="already exists"):
            config.add_nonvoter(nid, "localhost:8888", False)

    assert config == before


def test_add_nonvoter_with_existing_addr_fails_validation():
    config = bootstrapped_config()
    config.add_nonvoter(12, "localhost:7001", False)
    with pytest.raises(PlainError, match="duplicate address localhost:7001"):
        config.validate()


def test_add_nonvoter_promote_sets_action():
    config = bootstrapped_config()
    config.add_nonvoter(4, "localhost:7004", True)
    assert config.nodes[4] == Node(id=4, addr="localhost:7004", action=Action.PROMOTE)
    assert not config.is_stable()
    assert config.nodes[4].next_action() is Action.PROMOTE


def test_set_addr_data_and_action():
    config = bootstrapped_config()
    config.set_addr(2, "localhost:9999")
    config.set_addr(3, "localhost:7003")
    config.set_data(2, "payload")
    config.set_action(1, Action.DEMOTE)
    assert config.nodes[2].addr == "localhost:9999"
    assert config.nodes[2].data == "payload"
    assert config.nodes[3].addr == "localhost:7003"
    assert config.nodes[1].action is Action.DEMOTE
    assert config.node_for_addr("localhost:9999").id == 2
    assert config.node_for_addr("localhost:7002") is None


def test_voters_and_quorum():
    config = bootstrapped_config()
    assert config.num_voters() == 3
    assert config.quorum() == 2
    config.add_nonvoter(4, "localhost:7004", False)
    assert config.num_voters() == 3
    assert config.is_voter(1)
    assert not config.is_voter(4)
    assert not config.is_voter(99)


def test_is_bootstrapped():
    assert not Config().is_bootstrapped()
    assert bootstrapped_config().is_bootstrapped()


def test_clone_is_independent():
    config = bootstrapped_config()
    copy = config.clone()
    copy.set_data(1, "changed")
    del copy.nodes[2]
    assert config.nodes[1].data == ""
    assert 2 in config.nodes
    assert copy.index == config.index and copy.term == config.term


def test_encode_decode_round_trip():
    config = bootstrapped_config()
    config.add_nonvoter(4, "localhost:7004", True)
    config.set_data(2, "meta")
    decoded = Config.decode_nodes(config.encode_nodes(), 5, 3)
    assert decoded.nodes == config.nodes
    assert (decoded.index, decoded.term) == (5, 3)


def test_encode_empty_config():
    data = Config().encode_nodes()
    assert data == b"\x00\x00\x00\x00"
    assert Config.decode_nodes(data, 0, 0) == Config()


def test_validate_errors():
    with pytest.raises(PlainError, match="zero voters"):
        Config().validate()

    config = bootstrapped_config()
    config.nodes[5] = Node(id=6, addr="localhost:7006", voter=True)
    with pytest.raises(PlainError, match="id mismatch for node 6"):
        config.validate()

    config = Config({1: Node(id=1, addr="localhost:1")})
    with pytest.raises(PlainError, match="zero voters"):
        config.validate()


def test_validate_ok():
    config = bootstrapped_config()
    config.validate()
    assert config.num_voters() == 3


def test_str():
    config = bootstrapped_config()
    config.add_nonvoter(4, "localhost:7004", True)
    assert str(config) == (
        "Config{index: 1, voters: [1,localhost:7001 2,localhost:7002 3,localhost:7003], "
        "nonvoters: [4,localhost:7004,promote]}"
    )


# ---- Configs ----------------------------------------------------------------


def test_configs_states():
    configs = Configs()
    assert not configs.is_bootstrapped()
    assert configs.is_committed()

    latest = bootstrapped_config()
    configs = Configs(committed=Config(), latest=latest)
    assert configs.is_bootstrapped()
    assert not configs.is_committed()
    assert not configs.is_stable()

    configs.committed = latest.clone()
    assert configs.is_committed()
    assert configs.is_stable()

    configs.latest.set_action(1, Action.DEMOTE)
    assert configs.is_committed()
    assert not configs.is_stable()


def test_configs_clone_is_independent():
    configs = Configs(bootstrapped_config(), bootstrapped_config())
    copy = configs.clone()
    copy.latest.set_data(1, "x")
    copy.committed.nodes.clear()
    assert configs.latest.nodes[1].data == ""
    assert len(configs.committed.nodes) == 3