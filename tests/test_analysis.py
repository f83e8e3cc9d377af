import json

import httpx
import pytest

from intelboard.analysis import AnalysisClient, StreamDecoder, build_prompts
from intelboard.errors import AnalysisError
from intelboard.schema import AnalysisType


def _frame(content):
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"


def test_decoder_concatenates_content_until_done():
    d = StreamDecoder()
    out = d.feed(_frame("Escalation ") + _frame("risk is high.") + "data: [DONE]\n\n" + _frame("ignored"))

    assert "".join(out) == "Escalation risk is high."
    assert d.done
    assert d.feed(_frame("more")) == []


def test_decoder_buffers_partial_lines_across_chunks():
    raw = ":keep-alive\n" + _frame("Hello") + _frame(" world")
    d = StreamDecoder()

    out = []
    for i in range(0, len(raw), 7):
        out.extend(d.feed(raw[i:i + 7]))

    assert "".join(out) == "Hello world"


def test_decoder_skips_comments_blank_and_foreign_lines():
    d = StreamDecoder()
    out = d.feed(": ping\r\n\r\nevent: message\r\n" + _frame("ok").replace("\n", "\r\n"))

    assert out == ["ok"]


def test_decoder_ignores_frames_without_content():
    d = StreamDecoder()
    role_only = "data: " + json.dumps({"choices": [{"delta": {"role": "assistant"}}]}) + "\n"

    assert d.feed(role_only + 'data: {"choices": []}\n' + _frame("x")) == ["x"]


def test_decoder_rejoins_a_frame_split_by_a_newline():
    payload = json.dumps({"choices": [{"delta": {"content": "joined"}}]})
    head, tail = payload[:20], payload[20:]
    d = StreamDecoder()

    assert d.feed("data: " + head + "\n") == []
    assert d.feed(tail + "\n") == ["joined"]


def test_decoder_drops_a_broken_frame_when_a_new_one_starts(caplog):
    d = StreamDecoder()

    out = d.feed('data: {"choices": [\n' + _frame("next"))

    assert out == ["next"]
    assert "dropping incomplete analysis frame" in caplog.text


def test_decoder_close_flushes_unterminated_last_line():
    d = StreamDecoder()
    body = _frame("a").rstrip("\n")

    assert d.feed(body) == []
    assert d.close() == ["a"]
    assert d.done


def _client(handler):
    return AnalysisClient(url="https://proxy.test/analyze-threat", api_key="k", transport=httpx.MockTransport(handler))


def test_client_streams_and_sends_expected_request(make_item):
    captured = {}
    chunks = [_frame("Threat ").encode(), _frame("assessed.").encode()[:10], _frame("assessed.").encode()[10:],
              b"data: [DONE]\n\n"]

    def handler(request):
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers.get("authorization")
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=iter(chunks))

    item = make_item(title="Port blockade", threat_level="high")
    with _client(handler) as client:
        text = client.analyze(item, AnalysisType.THREAT_ASSESSMENT)

    assert text == "Threat assessed."
    assert captured["auth"] == "Bearer k"
    assert captured["body"]["analysisType"] == "threat-assessment"
    assert captured["body"]["newsItem"]["title"] == "Port blockade"
    assert captured["body"]["newsItem"]["threatLevel"] == "high"


def test_client_reports_proxy_error_message(make_item):
    def handler(request):
        return httpx.Response(429, json={"error": "Rate limit exceeded. Please try again later."})

    with _client(handler) as client:
        with pytest.raises(AnalysisError) as exc:
            client.analyze(make_item(), "summary")

    assert exc.value.status_code == 429
    assert "Rate limit" in str(exc.value)


def test_client_reports_status_when_error_body_is_not_json(make_item):
    def handler(request):
        return httpx.Response(500, text="upstream exploded")

    with _client(handler) as client:
        with pytest.raises(AnalysisError, match="HTTP 500"):
            client.analyze(make_item(), "summary")


def test_client_wraps_transport_failures(make_item):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(AnalysisError) as exc:
            client.analyze(make_item(), "summary")

    assert isinstance(exc.value.__cause__, httpx.ConnectError)


def test_client_requires_configured_endpoint(make_item):
    client = AnalysisClient(url="", api_key="")
    client.url = ""

    with pytest.raises(AnalysisError, match="not configured"):
        client.analyze(make_item(), "summary")
    client.close()


def test_unknown_analysis_type_is_rejected(make_item):
    with _client(lambda r: httpx.Response(200)) as client:
        with pytest.raises(ValueError):
            client.analyze(make_item(), "horoscope")


@pytest.mark.parametrize("kind", list(AnalysisType))
def test_build_prompts_for_every_type(make_item, kind):
    item = make_item(title="T" * 900, summary="S" * 5000, tags=[f"t{i}" for i in range(15)])

    system, user = build_prompts(item, kind)

    assert system
    assert "T" * 500 in user and "T" * 501 not in user
    assert "S" * 2001 not in user
    if kind == AnalysisType.RELATED_EVENTS:
        assert "t9" in user and "t10" not in user
