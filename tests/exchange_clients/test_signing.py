from decimal import Decimal
from urllib.parse import parse_qsl

from exchange_clients.base_models import OrderSide
from exchange_clients.signing import build_canonical_query, sign_request, signed_query

SECRET = "NhqPtmdSJYdKjVHjA7PZj4Mge3R5YNiP1e3UZjInClVN65XAbvqqM6A7H5fATj0j"


def test_canonical_query_keeps_order_and_skips_none():
    query = build_canonical_query(
        [("symbol", "BTCUSDT"), ("side", OrderSide.BUY), ("price", None), ("quantity", Decimal("0.0100"))]
    )
    assert query == "symbol=BTCUSDT&side=BUY&quantity=0.01"


def test_decimal_is_plain_notation():
    assert build_canonical_query({"quantity": Decimal("1E-5")}) == "quantity=0.00001"
    assert build_canonical_query({"price": Decimal("2.75E+4")}) == "price=27500"


def test_signature_is_deterministic():
    query = "symbol=LTCBTC&side=BUY&type=LIMIT&timeInForce=GTC&quantity=1&price=0.1&recvWindow=5000&timestamp=1499827319559"
    first = sign_request(SECRET, query)
    assert first == sign_request(SECRET, query)
    assert len(first) == 64
    assert first == "c8db56825ae71d6d79447849e617115f4a920fa2acdcab2b053c4b2838bd6b71"


def test_single_byte_change_changes_signature():
    query = "symbol=BTCUSDT&quantity=1&timestamp=1700000000000"
    assert sign_request(SECRET, query) != sign_request(SECRET, query.replace("quantity=1", "quantity=2"))
    assert sign_request(SECRET, query) != sign_request(SECRET[:-1] + "k", query)


def test_signed_query_appends_timestamp_and_signature():
    query = signed_query(SECRET, [("symbol", "BTCUSDT")], recv_window=3000)
    payload, _, signature = query.rpartition("&signature=")
    params = dict(parse_qsl(payload))

    assert params["symbol"] == "BTCUSDT"
    assert params["recvWindow"] == "3000"
    assert int(params["timestamp"]) > 0
    assert signature == sign_request(SECRET, payload)
    assert SECRET not in query
