import pytest

from exchange_clients.base_models import ErrorInfo, RetryPolicy, call_with_retry
from exchange_clients.exceptions import (
    AuthenticationError,
    ExchangeAPIError,
    ExchangeTimeoutError,
    NetworkError,
    OrderNotFoundError,
    ProtocolError,
    error_from_dict,
    is_retryable,
)

NO_WAIT = RetryPolicy(max_attempts=3, min_wait=0, max_wait=0)


class Flaky:
    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.calls = 0
        self.result = result

    async def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestCallWithRetry:
    @pytest.mark.asyncio
    async def test_timeout_then_success(self):
        func = Flaky(ExchangeTimeoutError("slow"))
        assert await call_with_retry(NO_WAIT, func) == "ok"
        assert func.calls == 2

    @pytest.mark.asyncio
    async def test_attempts_are_bounded(self):
        func = Flaky(*[ExchangeTimeoutError("slow")] * 5)
        with pytest.raises(ExchangeTimeoutError):
            await call_with_retry(NO_WAIT, func)
        assert func.calls == 3

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        func = Flaky(ExchangeAPIError("Too many requests", code=-1003, http_status=429, retryable=True))
        assert await call_with_retry(NO_WAIT, func) == "ok"
        assert func.calls == 2

    @pytest.mark.parametrize(
        "error",
        [
            AuthenticationError("bad signature"),
            OrderNotFoundError("unknown"),
            NetworkError("refused"),
            ProtocolError("garbage"),
            ExchangeAPIError("insufficient balance", code=-2010),
        ],
    )
    @pytest.mark.asyncio
    async def test_non_retryable_errors_propagate_immediately(self, error):
        func = Flaky(error)
        with pytest.raises(type(error)):
            await call_with_retry(NO_WAIT, func)
        assert func.calls == 1

    @pytest.mark.asyncio
    async def test_on_retry_is_called_before_each_retry(self):
        seen = []
        func = Flaky(ExchangeTimeoutError("a"), ExchangeTimeoutError("b"))
        await call_with_retry(NO_WAIT, func, on_retry=lambda state: seen.append(state.attempt_number))
        assert seen == [1, 2]

    def test_policy_validation(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(deadline=0)


class TestErrorTaxonomy:
    def test_only_transient_errors_are_retryable(self):
        assert is_retryable(ExchangeTimeoutError())
        assert not is_retryable(AuthenticationError())
        assert not is_retryable(ValueError("plain"))

    def test_errors_survive_a_dict_round_trip(self):
        original = ExchangeAPIError("Too many requests", code=-1003, retryable=True)
        rebuilt = error_from_dict(original.to_dict())

        assert isinstance(rebuilt, ExchangeAPIError)
        assert rebuilt.code == -1003
        assert rebuilt.retryable
        assert isinstance(error_from_dict({"kind": "OrderNotFound", "message": "x"}), OrderNotFoundError)

    def test_unknown_kind_becomes_protocol_error(self):
        assert isinstance(error_from_dict({"kind": "Mystery", "message": "?"}), ProtocolError)

    def test_error_info_from_plain_exception(self):
        info = ErrorInfo.from_exception(RuntimeError("boom"))
        assert info.kind == "InternalError"
        assert info.message == "boom"
