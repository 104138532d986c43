import argparse
import asyncio
import logging
import os
import sys

import httpx
import uvicorn

from api_client import GatewayClient, GatewayError
from audio import AudioBlob, AudioCapture, CaptureError, RecordingInProgressError
from conversation import ConversationController, NoAgentSelectedError, Role
from input_controller import InputController, InputMode
from minting import MintFlow, MintState
from visualizer import Visualizer, render_bars

logger = logging.getLogger(__name__)

HELP = (
    "Commands:\n"
    "  /agents          list agents\n"
    "  /agent <id>      select an agent (clears the conversation)\n"
    "  /record          start recording from the microphone\n"
    "  /stop            stop recording and hold the audio for sending\n"
    "  /file <path>     attach an audio file\n"
    "  /send            send the held audio\n"
    "  /mint <wallet>   mint the last agent reply (mock)\n"
    "  /quit            exit\n"
    "Anything else is sent as text."
)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def run_gateway(args) -> None:
    from gateway import GatewayConfig, create_app
    config = GatewayConfig.from_env()
    uvicorn.run(
        create_app(config),
        host=args.host or config.host,
        port=args.port or config.port,
        log_level=args.log_level.lower(),
    )


def run_agent_server(args) -> None:
    from agent_server import AgentServerConfig, create_app
    config = AgentServerConfig.from_env()
    uvicorn.run(
        create_app(config=config),
        host=args.host or config.host,
        port=args.port or config.port,
        log_level=args.log_level.lower(),
    )


class ChatSession:
    """Terminal client: input controller + conversation + visualizer."""

    def __init__(self, client: GatewayClient, capture: AudioCapture):
        self.conversation = ConversationController(client)
        self.inputs = InputController(capture, is_busy=lambda: self.conversation.is_loading)
        self.visualizer = Visualizer(on_frame=self._draw_bars, fps=15)

    @staticmethod
    def _draw_bars(bars) -> None:
        sys.stderr.write(f"\r[{render_bars(bars)}] recording... /stop to finish ")
        sys.stderr.flush()

    def _print_reply(self) -> None:
        message = self.conversation.messages[-1]
        print(f"agent: {message.text}")
        if message.audio_url:
            print(f"       audio: {message.audio_url}")

    async def _submit(self) -> None:
        if not self.conversation.agent_id:
            print("Select an agent first with /agent <id>.")
            return
        submission = self.inputs.submit()
        if submission is None:
            return
        try:
            await self.conversation.submit(submission.text, submission.file)
        except NoAgentSelectedError:
            print("Select an agent first with /agent <id>.")
            return
        self._print_reply()

    async def handle(self, line: str) -> bool:
        command, _, arg = line.strip().partition(" ")
        arg = arg.strip()
        if command == "/quit":
            return False
        if command == "/help":
            print(HELP)
        elif command == "/agents":
            try:
                agents = await self.conversation.agents()
            except (GatewayError, httpx.HTTPError, ValueError) as e:
                logger.error(f"Failed to list agents: {e}")
                print("Could not load agents. Is the gateway running?")
                return True
            for agent in agents:
                print(f"  {agent.id}  {agent.name}: {agent.description}")
        elif command == "/agent":
            self.conversation.select_agent(arg or None)
            print(f"Agent: {arg or 'none'}")
        elif command == "/record":
            try:
                self.inputs.record()
            except CaptureError as e:
                print(e.user_message)
                return True
            except (RecordingInProgressError, RuntimeError) as e:
                print(str(e))
                return True
            self.visualizer.attach(self.inputs.analyser)
        elif command == "/stop":
            self.visualizer.detach()
            try:
                blob = self.inputs.stop()
            except (CaptureError, RuntimeError) as e:
                print(f"\nRecording failed: {e}")
                return True
            if blob:
                print(f"\nHolding {blob.name} ({blob.size} bytes). /send to submit.")
        elif command == "/file":
            try:
                self.inputs.choose_file(AudioBlob.from_path(arg))
            except (OSError, RuntimeError) as e:
                print(f"Cannot attach file: {e}")
                return True
            print(f"Holding {arg}. /send to submit.")
        elif command == "/send":
            await self._submit()
        elif command == "/mint":
            agent_messages = [m for m in self.conversation.messages if m.role is Role.AGENT]
            if not agent_messages:
                print("Nothing to mint yet.")
                return True
            flow = MintFlow(agent_messages[-1].text)
            state = await flow.confirm(arg)
            if state is MintState.SUCCESS:
                print(f"Minted. Transaction: {flow.tx_hash}")
            else:
                print(flow.error)
        elif self.inputs.mode is InputMode.TEXT:
            self.inputs.set_text(line.strip())
            await self._submit()
        else:
            print(f"Input is {self.inputs.mode.value}; use /stop or /send.")
        return True

    async def run(self) -> None:
        if not await self.conversation.client.check_health():
            print(f"Gateway at {self.conversation.client.base_url} is not responding.")
        print(HELP)
        try:
            while True:
                line = await asyncio.to_thread(input, "> ")
                if not line.strip():
                    continue
                if not await self.handle(line):
                    break
        except (EOFError, KeyboardInterrupt):
            print("\nStopping...")
        finally:
            self.visualizer.detach()
            self.inputs.close()


def run_chat(args) -> None:
    client = GatewayClient(base_url=args.gateway_url)
    session = ChatSession(client, AudioCapture())
    if args.agent:
        session.conversation.select_agent(args.agent)
    asyncio.run(session.run())


def main(argv=None):
    parser = argparse.ArgumentParser(description="Voice agent gateway, agent server and chat client")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    gateway = subparsers.add_parser("gateway", help="Run the REST gateway (default port 8000)")
    gateway.add_argument("--host")
    gateway.add_argument("--port", type=int)
    gateway.set_defaults(func=run_gateway)

    agent_server = subparsers.add_parser("agent-server", help="Run the JSON-RPC agent server (default port 3000)")
    agent_server.add_argument("--host")
    agent_server.add_argument("--port", type=int)
    agent_server.set_defaults(func=run_agent_server)

    chat = subparsers.add_parser("chat", help="Interactive terminal client")
    chat.add_argument("--gateway-url")
    chat.add_argument("--agent", help="Agent id to start with")
    chat.set_defaults(func=run_chat)

    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    args.func(args)


if __name__ == "__main__":
    main()
