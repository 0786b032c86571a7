"""
EGYPTOAI TEST SCRIPT - Streaming chat from the terminal
=======================================================

PURPOSE:
This is a command-line test interface for a running EgyptoAI backend. It sends
prompts to POST /chat/stream and prints the reply while it streams in, so you
can see first-token latency and the SSE framing without a frontend.

USAGE:
    python test.py

    Make sure the server is running first: python run.py

COMMANDS:
    /model <name>  - Switch provider (gemini, deepseek, groq). Default: gemini
    /login <user>  - Get a token for this user id (needs JWT_SECRET, same as the server)
    /logout        - Chat anonymously again (nothing is stored)
    /history       - List your conversations (logged in only)
    /new           - Start a new conversation
    /quit or /exit - Exit

HOW IT WORKS:
1. Each prompt is sent with the current model and, when logged in, the current chatId.
2. `data:` lines are printed as they arrive; `event: done` ends the reply.
3. The X-Chat-Id response header tells us which conversation to continue.
"""

import json

import requests

from egypto.auth import issue_token


# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------
# API base URL; change if your server runs on a different host or port.
BASE_URL = "http://localhost:8000"
MODEL = "gemini"
TOKEN = None
CHAT_ID = None


def print_header():
    print("\n" + "=" * 60)
    print("EgyptoAI - Streaming Chat")
    print("=" * 60)
    print("\nCommands:")
    print("  /model <name> - gemini | deepseek | groq")
    print("  /login <user> - chat as a user (conversations are stored)")
    print("  /logout       - chat anonymously")
    print("  /history      - list your conversations")
    print("  /new          - start a new conversation")
    print("  /quit         - exit")
    print("=" * 60 + "\n")


def _headers():
    return {"Authorization": f"Bearer {TOKEN}"} if TOKEN else {}


# -----------------------------------------------------------------------------
# API CALLS
# -----------------------------------------------------------------------------

def stream_message(prompt):
    """
    Send one prompt to /chat/stream and print deltas as they arrive.

    Returns:
        str: the full reply, or an error message.
    """
    global CHAT_ID

    body = {"prompt": prompt, "model": MODEL}
    if CHAT_ID:
        body["chatId"] = CHAT_ID

    try:
        with requests.post(
            f"{BASE_URL}/chat/stream", json=body, headers=_headers(), stream=True, timeout=120
        ) as response:
            if response.status_code != 200:
                try:
                    return f"Error: {response.status_code} - {response.json().get('error')}"
                except ValueError:
                    return f"Error: {response.status_code} - {response.text}"

            CHAT_ID = response.headers.get("X-Chat-Id", CHAT_ID)
            reply = []
            event_name = None
            data_lines = []
            for line in response.iter_lines(decode_unicode=True):
                if line.startswith("event:"):
                    event_name = line[6:].strip()
                elif line.startswith("data:"):
                    data = line[5:]
                    data_lines.append(data[1:] if data.startswith(" ") else data)
                elif line == "":
                    # blank line: one event is complete
                    text = "\n".join(data_lines)
                    data_lines = []
                    if event_name == "done":
                        break
                    if text.startswith('{"error"'):
                        try:
                            return f"\nError: {json.loads(text)['error']}"
                        except (ValueError, KeyError):
                            pass
                    reply.append(text)
                    print(text, end="", flush=True)
                    event_name = None
            print()
            return "".join(reply)

    except requests.exceptions.ConnectionError:
        return "Cannot connect to backend. Start it with: python run.py"
    except requests.exceptions.Timeout:
        return "Request timed out."


def get_history():
    if not TOKEN:
        return "Log in first: /login <user>"
    try:
        response = requests.get(f"{BASE_URL}/chat/titles", headers=_headers(), timeout=10)
        if response.status_code != 200:
            return f"Could not retrieve history ({response.status_code})"
        chats = response.json().get("data", [])
        if not chats:
            return "No conversations yet"
        return "\n".join(f"{i}. {c['title']}  [{c['id']}]" for i, c in enumerate(chats, 1))
    except requests.exceptions.RequestException as e:
        return f"Error retrieving history: {e}"


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

def main():
    global MODEL, TOKEN, CHAT_ID

    print_header()
    while True:
        try:
            user_input = input("\nYou: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if not user_input:
            continue
        if user_input in ["/quit", "/exit"]:
            print("Goodbye!")
            break
        if user_input.startswith("/model"):
            MODEL = user_input.partition(" ")[2].strip() or MODEL
            print(f"Model: {MODEL}")
            continue
        if user_input.startswith("/login"):
            user = user_input.partition(" ")[2].strip()
            if not user:
                print("Usage: /login <user>")
                continue
            TOKEN, CHAT_ID = issue_token(user), None
            print(f"Logged in as {user}")
            continue
        if user_input == "/logout":
            TOKEN, CHAT_ID = None, None
            print("Chatting anonymously")
            continue
        if user_input == "/history":
            print(get_history())
            continue
        if user_input == "/new":
            CHAT_ID = None
            print("New conversation")
            continue
        if user_input.startswith("/"):
            print(f"Unknown command: {user_input}")
            continue

        print(f"EgyptoAI ({MODEL}): ", end="", flush=True)
        result = stream_message(user_input)
        if result.startswith(("Error", "\nError", "Cannot", "Request")):
            print(result)


# Run the interactive loop when this file is executed (python test.py).
if __name__ == "__main__":
    main()
