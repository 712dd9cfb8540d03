"""Tests for the batch orchestrator's per-item isolation."""

import json
import re

import pytest

from services.assessment.exceptions import (
    ClassificationAmbiguous,
    FrameExtractionFailed,
    InvalidImage,
    ModelInvocationFailed,
    VideoProcessingUnavailable,
)
from services.assessment.orchestrator import (
    BatchOrchestrator,
    ItemFailed,
    ItemStage,
    ItemSucceeded,
    UploadItem,
    degraded_video_result,
    generate_sku,
)
from services.assessment.requestor import AssessmentRequestor
from tests.fixtures.assessment_fixtures import (
    FakeFrameSampler,
    FakeVisionClient,
    InMemoryAssessmentStore,
    make_image_bytes,
    multi_image_reply,
    reply_text,
)


def _photo(name: str = "lid.jpg") -> UploadItem:
    return UploadItem(make_image_bytes(), "image/jpeg", name)


def _video(name: str = "walkaround.mp4") -> UploadItem:
    return UploadItem(b"\x00\x00\x00\x18ftypmp42" * 20, "video/mp4", name)


def _build(settings, client=None, sampler=None, store=None) -> BatchOrchestrator:
    return BatchOrchestrator(
        requestor=AssessmentRequestor(client or FakeVisionClient()),
        frame_sampler=sampler or FakeFrameSampler(),
        store=store or InMemoryAssessmentStore(),
        settings=settings,
    )


def test_generate_sku_format():
    sku = generate_sku(now_ms=1700000000000)
    assert re.fullmatch(r"AUTO-1700000000000-[a-z0-9]{9}", sku)


def test_generate_sku_avoids_taken(monkeypatch):
    suffixes = iter("aaaaaaaaa" + "bbbbbbbbb")
    monkeypatch.setattr(
        "services.assessment.orchestrator.secrets.choice", lambda _: next(suffixes)
    )

    sku = generate_sku(now_ms=1, taken={"AUTO-1-aaaaaaaaa"})

    assert sku == "AUTO-1-bbbbbbbbb"


def test_degraded_video_result_shape():
    result = degraded_video_result("decoder crashed", 0.4)

    assert result.grade == "C"
    assert result.confidence == 0.3
    assert result.damage_types == ["Video Processing Error"]
    assert result.degraded is True
    assert "Manual review required" in result.detailed_findings[0].description
    assert result.detailed_findings[0].category == "Overall Structure"


@pytest.mark.asyncio
async def test_one_outcome_per_item_in_order(test_settings):
    orchestrator = _build(test_settings)
    items = [
        _photo("a.jpg"),
        UploadItem(b"just text" * 200, "text/plain", "notes.txt"),
        _video("b.mp4"),
        UploadItem(b"tiny", "image/png", "c.png"),
    ]

    outcomes = await orchestrator.process_batch(items)

    assert [o.original_file_name for o in outcomes] == [
        "a.jpg",
        "notes.txt",
        "b.mp4",
        "c.png",
    ]
    assert [type(o) for o in outcomes] == [
        ItemSucceeded,
        ItemFailed,
        ItemSucceeded,
        ItemFailed,
    ]


@pytest.mark.asyncio
async def test_unsupported_file_skips_model(test_settings):
    client = FakeVisionClient()
    orchestrator = _build(test_settings, client=client)

    [outcome] = await orchestrator.process_batch(
        [UploadItem(b"x" * 2048, "text/plain", "photo.jpg")]
    )

    assert isinstance(outcome, ItemFailed)
    assert outcome.reason.startswith("Invalid file type")
    assert outcome.error_code == ClassificationAmbiguous().error_code
    assert outcome.stage is ItemStage.CLASSIFIED
    assert client.calls == []


@pytest.mark.asyncio
async def test_undersized_image_fails_before_model(test_settings):
    client = FakeVisionClient()
    orchestrator = _build(test_settings, client=client)

    [outcome] = await orchestrator.process_batch(
        [UploadItem(b"\xff\xd8", "image/jpeg", "a.jpg")]
    )

    assert isinstance(outcome, ItemFailed)
    assert outcome.error_code == InvalidImage().error_code
    assert "corrupted or empty" in outcome.reason
    assert client.calls == []


@pytest.mark.asyncio
async def test_model_failure_isolated_to_one_item(test_settings):
    client = FakeVisionClient(
        [reply_text(), ModelInvocationFailed("rate limited"), reply_text(grade="A")]
    )
    store = InMemoryAssessmentStore()
    orchestrator = _build(test_settings, client=client, store=store)

    outcomes = await orchestrator.process_batch(
        [_photo("1.jpg"), _photo("2.jpg"), _photo("3.jpg")]
    )

    assert [isinstance(o, ItemSucceeded) for o in outcomes] == [True, False, True]
    assert outcomes[1].reason == "rate limited"
    assert outcomes[1].stage is ItemStage.ASSESSING
    assert outcomes[2].record.grade == "A"
    assert len(store.records) == 2


@pytest.mark.asyncio
async def test_invalid_model_reply_is_item_failure(test_settings):
    client = FakeVisionClient([reply_text(confidence=1.2)])
    store = InMemoryAssessmentStore()
    orchestrator = _build(test_settings, client=client, store=store)

    [outcome] = await orchestrator.process_batch([_photo()])

    assert isinstance(outcome, ItemFailed)
    assert outcome.error_code == "model_response_invalid"
    assert store.records == []


@pytest.mark.asyncio
async def test_store_failure_on_second_of_three(test_settings):
    store = InMemoryAssessmentStore(fail_on=[2])
    orchestrator = _build(test_settings, store=store)

    outcomes = await orchestrator.process_batch(
        [_photo("1.jpg"), _photo("2.jpg"), _photo("3.jpg")]
    )

    assert isinstance(outcomes[0], ItemSucceeded)
    assert isinstance(outcomes[1], ItemFailed)
    assert isinstance(outcomes[2], ItemSucceeded)
    assert outcomes[1].stage is ItemStage.PERSISTING
    assert "Please try again" in outcomes[1].reason
    assert [r.original_file_name for r in store.records] == ["1.jpg", "3.jpg"]


@pytest.mark.asyncio
async def test_unexpected_error_isolated(test_settings):
    class ExplodingStore(InMemoryAssessmentStore):
        async def create(self, data):
            if data.original_file_name == "boom.jpg":
                raise RuntimeError("unexpected")
            return await super().create(data)

    orchestrator = _build(test_settings, store=ExplodingStore())

    outcomes = await orchestrator.process_batch([_photo("boom.jpg"), _photo("ok.jpg")])

    assert isinstance(outcomes[0], ItemFailed)
    assert outcomes[0].error_code == "unexpected_error"
    assert isinstance(outcomes[1], ItemSucceeded)


@pytest.mark.asyncio
async def test_skus_unique_within_batch(test_settings):
    store = InMemoryAssessmentStore()
    orchestrator = _build(test_settings, store=store)

    await orchestrator.process_batch([_photo(f"{i}.jpg") for i in range(5)])

    skus = [p.sku for p in store.payloads]
    assert len(set(skus)) == 5
    assert all(s.startswith("AUTO-") for s in skus)


@pytest.mark.asyncio
async def test_video_success_carries_metadata(test_settings):
    sampler = FakeFrameSampler()
    store = InMemoryAssessmentStore()
    orchestrator = _build(test_settings, sampler=sampler, store=store)

    [outcome] = await orchestrator.process_batch([_video()])

    assert isinstance(outcome, ItemSucceeded)
    assert outcome.record.file_type == "video"
    assert outcome.record.video_metadata.frames_analyzed == 3
    assert outcome.record.degraded is False
    assert sampler.calls[0][1] == test_settings.VIDEO_FRAME_COUNT


@pytest.mark.parametrize(
    "error",
    [
        FrameExtractionFailed("moov atom not found"),
        VideoProcessingUnavailable(),
    ],
)
@pytest.mark.asyncio
async def test_video_extraction_failure_becomes_degraded_success(test_settings, error):
    client = FakeVisionClient()
    orchestrator = _build(
        test_settings, client=client, sampler=FakeFrameSampler(error=error)
    )

    [outcome] = await orchestrator.process_batch([_video()])

    assert isinstance(outcome, ItemSucceeded)
    assert outcome.record.grade == "C"
    assert outcome.record.confidence == pytest.approx(0.3)
    assert "Video Processing Error" in outcome.record.damage_types
    assert outcome.record.degraded is True
    assert error.message in outcome.record.overall_condition
    assert client.calls == []


@pytest.mark.parametrize(
    "error",
    [
        OSError(28, "No space left on device"),
        PermissionError(13, "Permission denied"),
        RuntimeError("decoder crashed"),
    ],
)
@pytest.mark.asyncio
async def test_unexpected_video_error_becomes_degraded_success(test_settings, error):
    client = FakeVisionClient()
    orchestrator = _build(
        test_settings, client=client, sampler=FakeFrameSampler(error=error)
    )

    [outcome] = await orchestrator.process_batch([_video()])

    assert isinstance(outcome, ItemSucceeded)
    assert outcome.record.grade == "C"
    assert outcome.record.degraded is True
    assert "Video Processing Error" in outcome.record.damage_types
    assert client.calls == []


@pytest.mark.asyncio
async def test_video_unexpected_model_error_becomes_degraded_success(test_settings):
    client = FakeVisionClient([RuntimeError("connection reset")])
    orchestrator = _build(test_settings, client=client)

    [outcome] = await orchestrator.process_batch([_video()])

    assert isinstance(outcome, ItemSucceeded)
    assert outcome.record.degraded is True


@pytest.mark.asyncio
async def test_video_model_failure_becomes_degraded_success(test_settings):
    client = FakeVisionClient(["not json"])
    orchestrator = _build(test_settings, client=client)

    [outcome] = await orchestrator.process_batch([_video()])

    assert isinstance(outcome, ItemSucceeded)
    assert outcome.record.degraded is True


@pytest.mark.asyncio
async def test_video_configuration_error_is_failure(test_settings):
    client = FakeVisionClient(
        [ModelInvocationFailed("not configured", is_configuration_error=True)]
    )
    orchestrator = _build(test_settings, client=client)

    [outcome] = await orchestrator.process_batch([_video()])

    assert isinstance(outcome, ItemFailed)
    assert outcome.reason == "not configured"


@pytest.mark.asyncio
async def test_octet_stream_heic_routed_as_image(test_settings):
    store = InMemoryAssessmentStore()
    orchestrator = _build(test_settings, store=store)
    # JPEG payload under a HEIC name still decodes; the declared type is generic
    item = UploadItem(make_image_bytes(), "application/octet-stream", "IMG_0001.heic")

    [outcome] = await orchestrator.process_batch([item])

    assert isinstance(outcome, ItemSucceeded)
    assert store.payloads[0].mime_type == "image/heic"
    assert store.payloads[0].file_type == "image"


@pytest.mark.asyncio
async def test_brand_and_model_stored(test_settings):
    store = InMemoryAssessmentStore()
    orchestrator = _build(test_settings, store=store)

    await orchestrator.process_batch([_photo()], brand="Lenovo", model="T480")

    assert store.payloads[0].brand == "Lenovo"
    assert store.payloads[0].model == "T480"


@pytest.mark.asyncio
async def test_combined_assessment_single_record(test_settings):
    client = FakeVisionClient([json.dumps(multi_image_reply(2))])
    store = InMemoryAssessmentStore()
    orchestrator = _build(test_settings, client=client, store=store)

    record = await orchestrator.assess_combined([_photo("lid.jpg"), _photo("base.jpg")])

    assert record.file_type == "images"
    assert record.original_file_name == "lid.jpg, base.jpg"
    assert [a.original_file_name for a in record.image_analyses] == ["lid.jpg", "base.jpg"]
    assert len(client.calls) == 1
    assert len(client.calls[0][1]) == 2


@pytest.mark.asyncio
async def test_combined_rejects_non_images(test_settings):
    orchestrator = _build(test_settings)

    with pytest.raises(ClassificationAmbiguous):
        await orchestrator.assess_combined([_photo(), _video()])
