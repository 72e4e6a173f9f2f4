"""
Realtime Newsline - phone call to voice-AI session bridge

This application answers telephone calls and connects each one to a realtime
conversational voice-AI session acting as a news anchor. Caller audio is relayed
from the telephony media stream to the voice-AI socket, spoken responses are relayed
back, and the AI's tool calls are answered by querying the social platform's API.

Architecture Overview:
- FastAPI server exposing the call-setup webhooks and the media-stream WebSocket
- One CallSessionBridge per call, owning both sockets for the call's lifetime
- Tool Dispatcher translating AI tool calls into provider requests
- Best-effort collaborators for caller identity and transcript storage

Key Components:
- bot: Telephony and voice-AI adapters, the per-call bridge, and the persona
- config: Constants, environment settings and logging setup
- models: Wire message schemas and per-call session state
- services: HTTP clients for the backend and the social platform API
- tools: Tool definitions and the dispatcher
- websocket_manager: Routes media-stream sockets to their call's bridge

Getting Started:
1. Set up environment variables (or a .env file):
   - XAI_API_KEY: Voice-AI API key
   - X_BEARER_TOKEN: Social platform app token
   - BACKEND_URL: Identity/transcript backend
   - HOSTNAME: Public host name the telephony provider can reach

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the phone number's voice webhook at https://your-host/twiml
"""
