"""HTTP server exposing agents as routes (FastAPI + uvicorn)."""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qsl

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, ValidationError

from agentforce_adk.agent import Agent, render_template
from agentforce_adk.errors import ConfigurationError
from agentforce_adk.providers import ProviderKind
from agentforce_adk.server.compat import (
    ChatCompletionRequest,
    OllamaChatRequest,
    OllamaGenerateRequest,
    chat_completion_response,
    format_conversation,
    ollama_chat_response,
    ollama_generate_response,
    parse_model_parameter,
)
from agentforce_adk.workflow import Workflow


logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
BODY_METHODS = ("POST", "PUT", "PATCH")


def _error(status: int, error: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": error, "message": message, **extra})


def _validation_text(exc: ValidationError) -> str:
    return "; ".join(str(err.get("msg")) for err in exc.errors())


async def _json_body(request: Request) -> Optional[Dict[str, Any]]:
    """Parsed JSON object body, {} when empty, None when invalid."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def agent_for_request(agent: Agent, kind: Optional[ProviderKind] = None, model: Optional[str] = None) -> Agent:
    """Fresh copy of ``agent`` so concurrent requests never share history.

    When the request names a different provider or model, the copy is
    switched to it with the original model config.
    """
    request_agent = agent.clone()
    if kind is not None and model is not None and (kind, model) != (agent.provider_kind, agent.model):
        request_agent.use_llm(kind, model, agent.model_config)
    return request_agent


async def _form_body(request: Request) -> Optional[Dict[str, Any]]:
    """Fields of a urlencoded form or a JSON object body; None when unreadable."""
    content_type = request.headers.get("content-type", "")
    if "json" in content_type:
        return await _json_body(request)
    raw = await request.body()
    try:
        return dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
    except UnicodeDecodeError:
        return None


_NOT_FOUND_PAGE = """<!DOCTYPE html>
<html>
<head><title>File Not Found</title></head>
<body>
<h1>404 - File Not Found</h1>
<p>The requested file could not be found: {path}</p>
</body>
</html>
"""

_SERVER_ERROR_PAGE = """<!DOCTYPE html>
<html>
<head><title>Server Error</title></head>
<body>
<h1>500 - Internal Server Error</h1>
<p>An error occurred while serving the HTML file.</p>
</body>
</html>
"""


def html_file_response(file_path: Union[str, Path], template_data: Optional[Dict[str, Any]] = None) -> HTMLResponse:
    """Serve an HTML file; ``.hbs`` files get their ``{{ name }}`` placeholders filled."""
    path = Path(file_path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("HTML file not found: %s", path)
        return HTMLResponse(_NOT_FOUND_PAGE.format(path=path), status_code=404)
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Error serving file %s: %s", path, e)
        return HTMLResponse(_SERVER_ERROR_PAGE, status_code=500)
    if path.suffix.lower() == ".hbs":
        content = render_template(content, template_data or {})
    return HTMLResponse(content)


async def run_workflow_script(script: Path) -> Dict[str, Any]:
    """Run a Python workflow script with the current interpreter.

    JSON on stdout is returned as is; anything else is wrapped as
    ``{"output", "executed_at", "stderr"}``. A non-zero exit raises
    RuntimeError with the script's stderr.
    """
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        str(script),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    output = stdout.decode("utf-8", errors="replace")
    errors = stderr.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        raise RuntimeError(errors.strip() or f"Workflow script exited with code {proc.returncode}")
    if errors.strip():
        logger.warning("Workflow stderr: %s", errors.strip())
    try:
        return json.loads(output)
    except ValueError:
        return {"output": output, "executed_at": _now(), "stderr": errors or None}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AgentServer:
    """Collects agent routes on a FastAPI app.

    Example:
        ```python
        server = AgentServer("docs")
        server.add_route_agent("POST", "/story", story_agent)
        server.use_openai_compatible_routing(chat_agent)
        server.serve(port=3000)
        ```
    """

    def __init__(self, name: str = "AgentForceServer"):
        if not name or not name.strip():
            raise ConfigurationError("server name must be a non-empty string")
        self.name = name
        self.app = FastAPI(title=name)
        self._routes: List[Tuple[str, str]] = []
        self.app.add_api_route("/health", self._health, methods=["GET"])

    @property
    def routes(self) -> List[Tuple[str, str]]:
        return list(self._routes)

    async def _health(self) -> Dict[str, Any]:
        return {"status": "ok", "server": self.name, "routes": len(self._routes)}

    def _register(self, method: str, path: str, endpoint) -> None:
        method = method.upper()
        if method not in HTTP_METHODS:
            raise ConfigurationError(f"Unsupported HTTP method '{method}'. Use one of: {', '.join(HTTP_METHODS)}")
        if not path.startswith("/"):
            raise ConfigurationError(f"Route path must start with '/': {path}")
        self.app.add_api_route(path, endpoint, methods=[method])
        self._routes.append((method, path))
        logger.info("Route registered: %s %s", method, path)

    def add_route(self, method: str, path: str, payload: Any) -> "AgentServer":
        """Serve a static JSON payload."""
        async def endpoint() -> Any:
            if isinstance(payload, BaseModel):
                return payload.model_dump()
            return payload

        self._register(method, path, endpoint)
        return self

    def add_route_agent(self, method: str, path: str, agent: Agent) -> "AgentServer":
        """Expose an agent: the prompt comes from the JSON body or the query string.

        Responds with ``{success, method, path, agentName, prompt, response}``;
        400 when the prompt is missing, 500 when the agent fails.
        """
        method = method.upper()

        async def endpoint(request: Request) -> JSONResponse:
            prompt = None
            if method in BODY_METHODS:
                body = await _json_body(request)
                if body is None:
                    return _error(400, "Invalid JSON in request body", "Please provide valid JSON data")
                prompt = body.get("prompt")
            if prompt is None:
                prompt = request.query_params.get("prompt")
            if not isinstance(prompt, str) or not prompt.strip():
                return _error(
                    400,
                    "Missing prompt",
                    "Provide a non-empty 'prompt' in the JSON body or query string",
                    example={"prompt": "Tell me a story"},
                )

            try:
                response = await agent_for_request(agent).prompt(prompt).get_response()
            except Exception as e:
                logger.exception("Agent route %s %s failed", method, path)
                return _error(500, "Agent execution failed", str(e))

            return JSONResponse(content={
                "success": True,
                "method": method,
                "path": path,
                "agentName": agent.name,
                "prompt": prompt,
                "response": response,
            })

        self._register(method, path, endpoint)
        return self

    def add_html_route(
        self, path: str, file_path: Union[str, Path], template_data: Optional[Dict[str, Any]] = None
    ) -> "AgentServer":
        """Serve an HTML (or ``.hbs`` template) file on ``GET <path>``.

        The file is read on every request, so edits show up without a restart.
        """
        async def endpoint() -> HTMLResponse:
            return html_file_response(file_path, template_data)

        self._register("GET", path, endpoint)
        return self

    def add_form_trigger(
        self,
        form_name: str,
        file_path: Union[str, Path],
        agent: Agent,
        input_fields: Optional[Sequence[str]] = None,
        output_fields: Optional[Sequence[str]] = None,
    ) -> "AgentServer":
        """Serve a form on ``GET /<form_name>`` and answer its submissions on POST.

        ``.hbs`` forms get ``action``, ``title`` and ``submitText``. The
        submission needs a ``prompt`` field. With ``input_fields``, every
        listed field is required and no other field is accepted; listed
        fields other than the prompt are echoed in the response.
        ``output_fields`` picks the keys of the JSON response (default
        success, prompt, response, agentName).
        """
        if not form_name or not form_name.strip():
            raise ConfigurationError("form name must be a non-empty string")
        if not str(file_path).strip():
            raise ConfigurationError("file path must be a non-empty string")
        if agent is None:
            raise ConfigurationError("an agent is required for a form trigger")

        path = form_name if form_name.startswith("/") else f"/{form_name}"
        template_data = {"action": path, "title": f"Form: {form_name}", "submitText": "Submit"}
        expected = list(input_fields or ["prompt"])
        shown = list(output_fields or ["success", "prompt", "response", "agentName"])

        async def submit(request: Request) -> JSONResponse:
            data = await _form_body(request)
            if data is None:
                return _error(400, "Invalid form data", "Send a urlencoded form or a JSON object")
            prompt = data.get("prompt")
            if not isinstance(prompt, str) or not prompt:
                return _error(
                    400,
                    "Missing or invalid prompt",
                    'Form must include a "prompt" field with a string value',
                    expectedFields=expected,
                )

            if input_fields:
                missing = [f for f in expected if f != "prompt" and not data.get(f)]
                if missing:
                    return _error(
                        400,
                        "Missing required fields",
                        f"The following required fields are missing: {', '.join(missing)}",
                        missingFields=missing,
                        expectedFields=expected,
                        providedFields=list(data),
                    )
                unexpected = [f for f in data if f not in expected]
                if unexpected:
                    return _error(
                        400,
                        "Unexpected fields in request",
                        f"The following fields are not allowed: {', '.join(unexpected)}",
                        unexpectedFields=unexpected,
                        expectedFields=expected,
                        providedFields=list(data),
                    )

            try:
                response = await agent_for_request(agent).prompt(prompt).get_response()
            except Exception as e:
                logger.exception("Form trigger %s failed", path)
                return JSONResponse(
                    status_code=500,
                    content={"success": False, "error": "Internal server error", "message": str(e)},
                )

            result = {"success": True, "prompt": prompt, "response": response, "agentName": agent.name}
            result.update({k: v for k, v in data.items() if k in expected and k != "prompt"})
            return JSONResponse(content={k: v for k, v in result.items() if k in shown})

        logger.info("Adding form trigger %s for agent %s", path, agent.name)
        self.add_html_route(path, file_path, template_data)
        self._register("POST", path, submit)
        return self

    def add_workflow_trigger(self, method: str, path: str, workflow: Union[Workflow, str, Path]) -> "AgentServer":
        """Run a workflow whenever the route is called.

        ``workflow`` is a ``Workflow``, run in this process, or the path of
        a Python script, run with the current interpreter.
        """
        if isinstance(workflow, (str, Path)) and not str(workflow).strip():
            raise ConfigurationError("workflow file path must be a non-empty string")
        method = method.upper()
        label = workflow.name if isinstance(workflow, Workflow) else str(workflow)

        async def endpoint() -> JSONResponse:
            logger.info("Executing workflow %s", label)
            try:
                if isinstance(workflow, Workflow):
                    result = await workflow.run()
                else:
                    result = await run_workflow_script(Path(workflow).resolve())
            except Exception as e:
                logger.exception("Workflow %s failed", label)
                return JSONResponse(status_code=500, content={
                    "success": False,
                    "error": "Workflow execution failed",
                    "message": str(e),
                    "method": method,
                    "path": path,
                    "workflow": label,
                })
            return JSONResponse(content={
                "success": True,
                "message": "Workflow triggered successfully.",
                "workflow": label,
                "executedAt": _now(),
                "result": result,
            })

        self._register(method, path, endpoint)
        return self

    def use_openai_compatible_routing(self, agent: Agent, path: str = "/v1/chat/completions") -> "AgentServer":
        """Serve ``POST <path>`` and ``GET /v1/models`` in the OpenAI format.

        The request's ``model`` is ``provider/model``; a bare name uses the
        default provider. Streaming is not supported.
        """
        async def chat_completions(request: Request) -> JSONResponse:
            body = await _json_body(request)
            if body is None:
                return _error(400, "Invalid JSON in request body", "Please provide valid JSON data")
            try:
                payload = ChatCompletionRequest.model_validate(body)
            except ValidationError as e:
                return _error(400, "Invalid request", _validation_text(e))
            if payload.stream:
                return _error(400, "Invalid request", "Streaming responses are not supported")

            try:
                kind, model = parse_model_parameter(payload.model)
                request_agent = agent_for_request(agent, kind, model)
            except (ValueError, ConfigurationError) as e:
                return _error(400, "Invalid model parameter", str(e), example={
                    "model": "ollama/gemma3:12b",
                    "messages": [{"role": "user", "content": "what llm are you"}],
                })

            prompt = format_conversation(payload.messages)
            try:
                response = await request_agent.prompt(prompt).get_response()
            except Exception as e:
                logger.exception("OpenAI-compatible route failed")
                return _error(500, "Agent execution failed", str(e))
            return JSONResponse(content=chat_completion_response(payload.model, prompt, response))

        async def list_models() -> Dict[str, Any]:
            return {
                "object": "list",
                "data": [
                    {
                        "id": f"{agent.provider_kind.value}/{agent.model}",
                        "object": "model",
                        "created": 0,
                        "owned_by": agent.provider_kind.value,
                    }
                ],
            }

        self._register("POST", path, chat_completions)
        self._register("GET", "/v1/models", list_models)
        return self

    def use_ollama_compatible_routing(self, agent: Agent) -> "AgentServer":
        """Serve ``/api/generate``, ``/api/chat`` and ``/api/tags`` in the Ollama format."""
        async def generate(request: Request) -> JSONResponse:
            body = await _json_body(request)
            if body is None:
                return _error(400, "Invalid JSON in request body", "Please provide valid JSON data")
            try:
                payload = OllamaGenerateRequest.model_validate(body)
                kind, model = parse_model_parameter(payload.model)
                request_agent = agent_for_request(agent, kind, model)
            except ValidationError as e:
                return _error(400, "Invalid request", _validation_text(e))
            except (ValueError, ConfigurationError) as e:
                return _error(400, "Invalid model parameter", str(e))

            if payload.system:
                request_agent.system_prompt(payload.system)
            try:
                response = await request_agent.prompt(payload.prompt).get_response()
            except Exception as e:
                logger.exception("Ollama generate route failed")
                return _error(500, "Agent execution failed", str(e))
            return JSONResponse(content=ollama_generate_response(payload.model, response))

        async def chat(request: Request) -> JSONResponse:
            body = await _json_body(request)
            if body is None:
                return _error(400, "Invalid JSON in request body", "Please provide valid JSON data")
            try:
                payload = OllamaChatRequest.model_validate(body)
                kind, model = parse_model_parameter(payload.model)
                request_agent = agent_for_request(agent, kind, model)
            except ValidationError as e:
                return _error(400, "Invalid request", _validation_text(e))
            except (ValueError, ConfigurationError) as e:
                return _error(400, "Invalid model parameter", str(e))

            prompt = format_conversation(payload.messages)
            try:
                response = await request_agent.prompt(prompt).get_response()
            except Exception as e:
                logger.exception("Ollama chat route failed")
                return _error(500, "Agent execution failed", str(e))
            return JSONResponse(content=ollama_chat_response(payload.model, response))

        async def tags() -> Dict[str, Any]:
            return {
                "models": [
                    {
                        "name": agent.model,
                        "model": agent.model,
                        "modified_at": "",
                        "size": 0,
                        "details": {"provider": agent.provider_kind.value},
                    }
                ]
            }

        self._register("POST", "/api/generate", generate)
        self._register("POST", "/api/chat", chat)
        self._register("GET", "/api/tags", tags)
        return self

    def serve(self, host: str = "0.0.0.0", port: int = 3000, log_level: str = "info") -> None:
        """Run the app with uvicorn; blocks until the server stops."""
        logger.info("Starting %s on %s:%d", self.name, host, port)
        uvicorn.run(self.app, host=host, port=port, log_level=log_level)
