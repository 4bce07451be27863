from nethermind.txray.decoding.nested import NestingBudget, iter_calldata_candidates
from nethermind.txray.types.decoding import DecodedArg

CALL = bytes.fromhex("a9059cbb") + b"\x00" * 64


def test_candidates_in_argument_order():
    args = [
        DecodedArg(name="target", type="address", value="0x" + "11" * 20),
        DecodedArg(name="data", type="bytes", value=CALL),
        DecodedArg(name="short", type="bytes", value=b"\x01\x02\x03\x04"),
        DecodedArg(name="calls", type="bytes[]", value=[b"\x05" * 8, b"\x06"]),
        DecodedArg(
            name="records",
            type="tuple[]",
            value=[{"target": "0x" + "22" * 20, "callData": b"\x07" * 10}, {"callData": b""}],
        ),
        DecodedArg(name="hash", type="bytes32", value=b"\x08" * 32),
        DecodedArg(name="amount", type="uint256", value=10),
    ]

    assert list(iter_calldata_candidates(args)) == [CALL, b"\x05" * 8, b"\x07" * 10, b"\x08" * 32]


def test_nested_records_inside_single_tuples_are_not_scanned():
    args = [DecodedArg(name="order", type="tuple", value={"callData": CALL})]

    assert list(iter_calldata_candidates(args)) == []


def test_budget_depth_and_shared_node_count():
    budget = NestingBudget(max_depth=2, max_nodes=3)
    child = budget.descend()
    grandchild = child.descend()

    assert (budget.depth, child.depth, grandchild.depth) == (0, 1, 2)
    assert not grandchild.exhausted
    assert grandchild.descend().exhausted

    grandchild.consume()
    child.consume()
    assert budget.nodes == 2
    assert not budget.exhausted

    budget.consume()
    assert child.exhausted
    assert budget.exhausted
