"""Unit tests for the HTTP request activity (mocked session)."""

from __future__ import annotations

from unittest.mock import Mock

import requests

from activity_workflows.engine.activities import SendHttpRequest, Sequence
from activity_workflows.engine.bindings import VariableRef
from activity_workflows.engine.definition import WorkflowBuilder
from activity_workflows.engine.runtime import WorkflowRuntime
from activity_workflows.engine.services import ServiceProvider
from activity_workflows.engine.state_machine import InstanceStatus


def _response(status_code: int, content_type: str, body: object) -> Mock:
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.headers = {"Content-Type": content_type}
    response.json.return_value = body
    response.text = str(body)
    return response


def _runtime(services: ServiceProvider, session: Mock) -> WorkflowRuntime:
    services.register(requests.Session, session)
    return WorkflowRuntime(services=services)


def test_send_http_request_records_status_and_json_body(services: ServiceProvider) -> None:
    session = Mock(spec=requests.Session)
    session.request.return_value = _response(200, "application/json; charset=utf-8", {"ok": True})

    request = SendHttpRequest(
        "https://api.example.test/tasks",
        method="post",
        body={"title": "Onboard"},
        output_targets={"result": VariableRef("response")},
    )
    builder = WorkflowBuilder(id="http")
    builder.add_variable("response")
    builder.root = Sequence([request])

    runtime = _runtime(services, session)
    handle = runtime.start_new_instance(builder.build())

    assert handle.status is InstanceStatus.COMPLETED
    session.request.assert_called_once_with(
        "POST",
        "https://api.example.test/tasks",
        headers=None,
        json={"title": "Onboard"},
        timeout=30.0,
    )
    state = runtime.get_instance(handle.instance_id)
    assert state.outputs["SendHttpRequest1"] == {"status_code": 200, "result": {"ok": True}}
    assert state.variables["response"] == {"ok": True}


def test_send_http_request_returns_text_for_other_content(services: ServiceProvider) -> None:
    session = Mock(spec=requests.Session)
    session.request.return_value = _response(200, "text/plain", "pong")

    builder = WorkflowBuilder(id="http")
    builder.root = SendHttpRequest("https://api.example.test/ping", headers={"X-Trace": "1"})

    runtime = _runtime(services, session)
    handle = runtime.start_new_instance(builder.build())

    assert session.request.call_args.kwargs["headers"] == {"X-Trace": "1"}
    assert runtime.get_instance(handle.instance_id).outputs["SendHttpRequest1"]["result"] == "pong"


def test_http_error_faults_the_instance(services: ServiceProvider) -> None:
    session = Mock(spec=requests.Session)
    response = _response(503, "text/plain", "unavailable")
    response.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
    session.request.return_value = response

    builder = WorkflowBuilder(id="http")
    builder.root = SendHttpRequest("https://api.example.test/down")

    handle = _runtime(services, session).start_new_instance(builder.build())

    assert handle.status is InstanceStatus.FAULTED
    assert handle.fault is not None
    assert handle.fault.error_type == "HTTPError"
    assert handle.fault.message == "503 Server Error"
