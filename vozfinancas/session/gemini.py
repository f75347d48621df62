"""
Gemini Live transport.

Implements LiveTransport with the google-genai SDK:
client.aio.live.connect() opens a WebSocket session; audio goes up with
send_realtime_input, tool results with send_tool_response.

session.receive() yields the messages of ONE model turn and then stops,
while the WebSocket stays open. events() therefore calls receive() in a
loop and treats an empty turn as the remote side having closed.
"""

from contextlib import AsyncExitStack
from typing import Any, AsyncIterator, Optional

import structlog
from google import genai
from google.genai import types
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential
from websockets.exceptions import ConnectionClosedOK

from vozfinancas.audio.codec import AudioFrame
from vozfinancas.config import get_settings
from vozfinancas.models.expense import ToolCall, ToolDeclaration, ToolResponse
from vozfinancas.session.bridge import EventKind, ServerEvent


log = structlog.get_logger(__name__)


def to_function_declaration(declaration: ToolDeclaration) -> types.FunctionDeclaration:
    """Translate a ToolDeclaration into the SDK's schema."""
    parameters = None
    if declaration.parameters:
        parameters = types.Schema(
            type=types.Type.OBJECT,
            properties={
                p.name: types.Schema(type=types.Type(p.type.value), description=p.description)
                for p in declaration.parameters
            },
            required=declaration.required,
        )
    return types.FunctionDeclaration(
        name=declaration.name,
        description=declaration.description,
        parameters=parameters,
    )


def build_live_config(
    tools: list[ToolDeclaration],
    system_prompt: str,
    voice_name: str,
) -> types.LiveConnectConfig:
    """Build the LiveConnectConfig: audio replies, one voice, our tools."""
    return types.LiveConnectConfig(
        response_modalities=[types.Modality.AUDIO],
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice_name)
            )
        ),
        system_instruction=types.Content(parts=[types.Part(text=system_prompt)]),
        tools=[
            types.Tool(function_declarations=[to_function_declaration(t) for t in tools])
        ] if tools else None,
    )


def to_server_events(message: Any) -> list[ServerEvent]:
    """
    Normalize one LiveServerMessage.

    Order within a message: model-turn parts (audio, text), then tool
    calls, then interruption.
    """
    events: list[ServerEvent] = []

    server_content = getattr(message, "server_content", None)
    model_turn = getattr(server_content, "model_turn", None) if server_content else None
    for part in (getattr(model_turn, "parts", None) or []):
        if getattr(part, "thought", False):
            continue
        inline_data = getattr(part, "inline_data", None)
        if inline_data is not None and getattr(inline_data, "data", None):
            events.append(ServerEvent(kind=EventKind.AUDIO, audio=inline_data.data))
        if getattr(part, "text", None):
            events.append(ServerEvent(kind=EventKind.TEXT, text=part.text))

    tool_call = getattr(message, "tool_call", None)
    function_calls = getattr(tool_call, "function_calls", None) if tool_call else None
    if function_calls:
        events.append(
            ServerEvent(
                kind=EventKind.TOOL_CALLS,
                calls=[
                    ToolCall(id=fc.id, name=fc.name or "", args=dict(fc.args or {}))
                    for fc in function_calls
                ],
            )
        )

    if server_content is not None and getattr(server_content, "interrupted", False):
        events.append(ServerEvent(kind=EventKind.INTERRUPTED))

    return events


class GeminiLiveConnection:
    """An open Gemini Live session."""

    def __init__(self, session: Any, stack: AsyncExitStack):
        self._session = session
        self._stack = stack
        self._closed = False

    async def events(self) -> AsyncIterator[ServerEvent]:
        turns = 0
        while not self._closed:
            received = False
            try:
                async for message in self._session.receive():
                    received = True
                    for event in to_server_events(message):
                        yield event
            except ConnectionClosedOK:
                log.info("gemini_session_closed_by_server", turns=turns)
                return
            if not received:
                log.info("gemini_session_ended", turns=turns)
                return
            turns += 1

    async def send_audio(self, frame: AudioFrame) -> None:
        await self._session.send_realtime_input(
            audio=types.Blob(data=frame.pcm_bytes(), mime_type=frame.mime_type)
        )

    async def send_tool_responses(self, responses: list[ToolResponse]) -> None:
        await self._session.send_tool_response(
            function_responses=[
                types.FunctionResponse(id=r.call_id, name=r.name, response=r.to_payload())
                for r in responses
            ]
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._stack.aclose()


class GeminiLiveTransport:
    """
    Opens Gemini Live sessions.

    Usage:
        transport = GeminiLiveTransport()
        connection = await transport.connect(TOOL_DECLARATIONS, SYSTEM_PROMPT)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        voice_name: Optional[str] = None,
        attempts: Optional[int] = None,
        client: Optional[genai.Client] = None,
    ):
        """
        Initialize the transport.

        Args:
            api_key: Gemini API key. Uses settings if not provided.
            model: Live model name. Uses settings if not provided.
            voice_name: Prebuilt voice. Uses settings if not provided.
            attempts: Connect attempts before giving up.
            client: Pre-built client (tests inject one).
        """
        if client is None or model is None or voice_name is None or attempts is None:
            gemini = get_settings().gemini
            api_key = api_key or gemini.api_key
            model = model or gemini.live_model
            voice_name = voice_name or gemini.voice_name
            attempts = attempts or gemini.connect_attempts
        self._client = client or genai.Client(api_key=api_key)
        self.model = model
        self.voice_name = voice_name
        self.attempts = attempts

    async def connect(
        self,
        tools: list[ToolDeclaration],
        system_prompt: str,
    ) -> GeminiLiveConnection:
        config = build_live_config(tools, system_prompt, self.voice_name)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        ):
            with attempt:
                stack = AsyncExitStack()
                try:
                    session = await stack.enter_async_context(
                        self._client.aio.live.connect(model=self.model, config=config)
                    )
                except BaseException:
                    await stack.aclose()
                    raise
                log.info(
                    "gemini_session_opened",
                    model=self.model,
                    attempt=attempt.retry_state.attempt_number,
                )
                return GeminiLiveConnection(session, stack)
