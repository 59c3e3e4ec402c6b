"""
CipherRoom - Textual-based terminal user interface.

A thin host around ChatRoom: it draws the conversation, forwards input, and
decides when to re-lock (terminal focus loss or the lock key).
"""

from pathlib import Path

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.widgets import Button, Footer, Header, Input, Label, Static

from . import backup
from .constants import APP_NAME, EMPTY_LOG_TEXT, LOCK_FOCUS_REASON
from .relay import RelaySync
from .room import ChatRoom, RenderedMessage


class MessageBubble(Static):
    """One rendered envelope."""

    def __init__(self, message: RenderedMessage):
        super().__init__(self._build(message), classes="bubble" if message.unlocked else "bubble locked")

    @staticmethod
    def _build(message: RenderedMessage) -> Text:
        text = Text()
        text.append(message.sender, style="bold")
        if message.time:
            text.append(f"  {message.time}", style="dim")
        text.append("\n")
        if message.unlocked:
            text.append(message.body)
        else:
            text.append(" Encrypted ", style="reverse red" if "Incorrect" in message.body else "reverse green")
            text.append(f" {message.body}\n")
            text.append(message.cipher_preview, style="dim italic")
        return text


class CipherRoomApp(App):
    """Terminal host for one encrypted conversation."""

    TITLE = APP_NAME

    CSS = """
    #status-bar { height: 1; }
    #lock-label { width: 1fr; }
    #relay-status { width: auto; }
    #relay-bar, #code-bar, #composer { height: auto; }
    #relay-address { width: 2fr; }
    #relay-room { width: 1fr; }
    #messages { height: 1fr; border: round $primary; }
    .bubble { margin: 0 0 1 0; padding: 0 1; }
    .locked { color: $text-muted; }
    #code-input, #message-input { width: 1fr; }
    """

    BINDINGS = [
        Binding("ctrl+l", "lock", "Lock"),
        Binding("ctrl+d", "demo", "Demo message"),
        Binding("ctrl+e", "export", "Export"),
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(
        self,
        room: ChatRoom,
        relay: RelaySync,
        data_dir: Path,
        lock_on_blur: bool = True,
        auto_connect: bool = False,
    ):
        super().__init__()
        self.room = room
        self.relay = relay
        self.data_dir = Path(data_dir)
        self.lock_on_blur = lock_on_blur
        self.auto_connect = auto_connect

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="status-bar"):
            yield Label(self.room.lock_state.label, id="lock-label")
            yield Label(self.relay.status_label, id="relay-status")
        with Horizontal(id="relay-bar"):
            yield Input(value=self.relay.relay_address, placeholder="Relay URL", id="relay-address")
            yield Input(value=self.relay.room, placeholder="Room", id="relay-room")
            yield Button("Connect", id="connect", variant="primary")
            yield Button("Disconnect", id="disconnect")
        yield VerticalScroll(id="messages")
        with Horizontal(id="code-bar"):
            yield Input(placeholder="Shared code", password=True, id="code-input")
            yield Button("Set code", id="set-code")
        with Horizontal(id="composer"):
            yield Input(placeholder="Write a note", id="message-input")
            yield Button("Send", id="send", variant="success")
        yield Footer()

    async def on_mount(self) -> None:
        self.room.add_listener(self.refresh_messages)
        self.room.lock_state.add_listener(self._on_lock_change)
        self.relay.add_status_listener(self._on_relay_status)
        self.refresh_messages()
        if self.auto_connect:
            self.run_worker(self._connect(), exclusive=True, group="relay")

    async def on_unmount(self) -> None:
        await self.relay.disconnect()

    # ------------------------------------------------------------------
    # Redraw

    def refresh_messages(self) -> None:
        self.run_worker(self._render_messages(), exclusive=True, group="render")

    async def _render_messages(self) -> None:
        rendered = await self.room.render_async()
        container = self.query_one("#messages", VerticalScroll)
        await container.remove_children()
        if not rendered:
            await container.mount(Static(EMPTY_LOG_TEXT, classes="bubble locked"))
            return
        await container.mount_all([MessageBubble(message) for message in rendered])
        container.scroll_end(animate=False)

    def _on_lock_change(self, unlocked: bool) -> None:
        self.query_one("#lock-label", Label).update(self.room.lock_state.label)
        if not unlocked:
            self.query_one("#code-input", Input).value = ""

    def _on_relay_status(self, label: str, variant: str) -> None:
        status = self.query_one("#relay-status", Label)
        status.update(label)
        status.set_class(variant == "ok", "-ok")
        status.set_class(variant == "danger", "-danger")

    # ------------------------------------------------------------------
    # Input

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "set-code":
            self._submit_code()
        elif button_id == "send":
            await self._send()
        elif button_id == "connect":
            self.run_worker(self._connect(), exclusive=True, group="relay")
        elif button_id == "disconnect":
            await self.relay.disconnect()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "code-input":
            self._submit_code()
        elif event.input.id == "message-input":
            await self._send()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "code-input":
            self.room.lock_state.typed_code = event.value

    def _submit_code(self) -> None:
        if not self.room.submit_code(self.room.lock_state.typed_code):
            self.query_one("#code-input", Input).focus()

    async def _send(self) -> None:
        message_input = self.query_one("#message-input", Input)
        code_input = self.query_one("#code-input", Input)
        result = await self.room.send_text(message_input.value, self.room.lock_state.typed_code)
        if result.stored:
            message_input.value = ""
        elif result.status:
            self.query_one("#lock-label", Label).update(result.status)
            code_input.focus()

    async def _connect(self) -> None:
        address = self.query_one("#relay-address", Input).value
        room = self.query_one("#relay-room", Input).value
        await self.relay.connect(address, room)

    # ------------------------------------------------------------------
    # Actions and focus policy

    def on_app_blur(self, event: events.AppBlur) -> None:
        # Also runs while locked, to drop a code typed but never submitted
        if self.lock_on_blur:
            self.room.lock(LOCK_FOCUS_REASON)

    def action_lock(self) -> None:
        self.room.lock()

    async def action_demo(self) -> None:
        await self.room.add_demo_message()

    async def action_export(self) -> None:
        path = await backup.write_export(self.room.store, self.data_dir / "export.txt")
        self.notify(f"Encrypted log exported to {path}")
