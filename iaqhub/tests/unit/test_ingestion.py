import json
import math
from typing import Any
from unittest.mock import AsyncMock

import pytest

from iaqhub.core.errors import ValidationError
from iaqhub.core.ingestion import IngestionService, validate_reading

VALID: dict[str, Any] = {"pm25": 12.5, "voc": 140.0, "c2h5oh": 60.0, "co": 1.5}


# ===================================================================
# validate_reading
# ===================================================================


class TestValidateReading:
    def test_missing_both_iaq_values_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="no usable prediction value"):
            validate_reading(dict(VALID))

    def test_current_iaq_backs_up_missing_prediction(self) -> None:
        reading = validate_reading({**VALID, "current_iaq": 42.0})
        assert reading.predicted_iaq == 42.0
        assert reading.current_iaq == 42.0

    def test_non_finite_prediction_falls_back(self) -> None:
        reading = validate_reading({**VALID, "predicted_iaq": math.nan, "current_iaq": 55})
        assert reading.predicted_iaq == 55.0

    def test_invalid_current_iaq_is_stored_as_null(self) -> None:
        reading = validate_reading({**VALID, "predicted_iaq": 80, "current_iaq": "n/a"})
        assert reading.predicted_iaq == 80.0
        assert reading.current_iaq is None

    @pytest.mark.parametrize("bad", [None, "12", True, math.inf, math.nan])
    def test_bad_sensor_value(self, bad: Any) -> None:
        with pytest.raises(ValidationError, match="pm25"):
            validate_reading({**VALID, "pm25": bad, "predicted_iaq": 10})

    def test_missing_sensor_field_lists_every_bad_field(self) -> None:
        payload = {"pm25": 1.0, "voc": 2.0, "predicted_iaq": 10}
        with pytest.raises(ValidationError, match="c2h5oh, co"):
            validate_reading(payload)

    def test_ethanol_alias(self) -> None:
        payload = {"pm25": 1, "voc": 2, "ethanol": 3, "co": 4, "predicted_iaq": 5}
        assert validate_reading(payload).c2h5oh == 3.0

    def test_server_timestamp_when_omitted(self) -> None:
        reading = validate_reading({**VALID, "predicted_iaq": 10, "ts": None}, now=1234)
        assert reading.ts == 1234

    def test_supplied_timestamp_is_truncated(self) -> None:
        reading = validate_reading({**VALID, "predicted_iaq": 10, "ts": 1700000000.9})
        assert reading.ts == 1700000000

    def test_non_numeric_timestamp_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="ts"):
            validate_reading({**VALID, "predicted_iaq": 10, "ts": "yesterday"})

    def test_integer_too_large_for_float_is_rejected(self) -> None:
        huge = json.loads("1" + "0" * 400)
        with pytest.raises(ValidationError, match="pm25"):
            validate_reading({**VALID, "pm25": huge, "predicted_iaq": 10})

    def test_huge_iaq_falls_back_like_any_unusable_value(self) -> None:
        huge = json.loads("1" + "0" * 400)
        reading = validate_reading({**VALID, "predicted_iaq": huge, "current_iaq": 30})
        assert reading.predicted_iaq == 30.0

    @pytest.mark.parametrize("ts", [1e19, -1e19, 2**63])
    def test_timestamp_outside_int64_is_rejected(self, ts: Any) -> None:
        with pytest.raises(ValidationError, match="ts is out of range"):
            validate_reading({**VALID, "predicted_iaq": 10, "ts": ts})

    def test_non_object_payload(self) -> None:
        with pytest.raises(ValidationError):
            validate_reading([1, 2, 3])


# ===================================================================
# IngestionService
# ===================================================================


class TestIngestionService:
    async def test_store_then_broadcast(self) -> None:
        calls: list[str] = []
        store = AsyncMock()
        store.append.side_effect = lambda reading: calls.append("append") or 7
        broadcaster = AsyncMock()
        broadcaster.publish.side_effect = lambda record: calls.append("publish") or 1

        service = IngestionService(store, broadcaster)
        record = await service.ingest({**VALID, "predicted_iaq": 90, "ts": 100})

        assert calls == ["append", "publish"]
        assert record.id == 7
        published = broadcaster.publish.await_args.args[0]
        assert published["id"] == 7
        assert published["predicted_iaq"] == 90.0

    async def test_display_offset_only_affects_broadcast(self) -> None:
        store = AsyncMock()
        store.append.return_value = 1
        broadcaster = AsyncMock()

        service = IngestionService(store, broadcaster, display_offset=-25.0)
        record = await service.ingest({**VALID, "predicted_iaq": 100, "ts": 100})

        assert record.predicted_iaq == 100.0
        assert store.append.await_args.args[0].predicted_iaq == 100.0
        assert broadcaster.publish.await_args.args[0]["predicted_iaq"] == 75.0

    async def test_broadcast_failure_does_not_fail_ingestion(self) -> None:
        store = AsyncMock()
        store.append.return_value = 3
        broadcaster = AsyncMock()
        broadcaster.publish.side_effect = RuntimeError("boom")

        record = await IngestionService(store, broadcaster).ingest({**VALID, "current_iaq": 20})
        assert record.id == 3

    async def test_invalid_payload_is_never_stored(self) -> None:
        store = AsyncMock()
        broadcaster = AsyncMock()
        with pytest.raises(ValidationError):
            await IngestionService(store, broadcaster).ingest(dict(VALID))
        store.append.assert_not_awaited()
        broadcaster.publish.assert_not_awaited()
