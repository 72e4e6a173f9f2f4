"""
Persona of the phone news anchor: system instructions and the opening turn.

The bridge never speaks itself. It hands the voice AI a scripted user turn at
the start of the call and the AI renders it in the configured voice.
"""

from datetime import datetime
from typing import List, Optional

from newsline.models.call_session import CallerIdentity

MAX_GREETING_AUTHORS = 3

# Caller speech is transcribed so it can be stored next to the assistant's turns
INPUT_TRANSCRIPTION = {"model": "whisper-1"}

INSTRUCTIONS = """You are an AI news anchor delivering real-time news updates via phone.

PERSONALITY:
- Professional broadcast news anchor voice
- Confident, authoritative, yet conversational
- Energetic but not over-the-top

CALL FLOW:
1. Greet the caller warmly with the current time of day
2. If the caller is authenticated, address them by name and offer personalized options
3. Ask whether they would like to hear about a specific topic or what is trending
4. Based on their response:
   - A topic -> use search_news_topic
   - "Trending" or similar -> use get_trending_news
   - What a person has been posting -> use get_user_posts
   - "Who do I follow" -> use get_my_following (requires auth)
   - Sending a DM -> use send_dm (requires auth)
   - Posting a tweet -> use post_tweet (requires auth)
5. After receiving tool results, deliver a short news broadcast
6. Ask if they want to hear about anything else
7. End gracefully when they are done

AUTHENTICATED FEATURES:
If a tool reports that authentication is required, politely tell the caller they
need to connect their X account on the website first, then offer a public option.

TRENDING BROADCAST STYLE:
Open with "Here's what's making headlines right now...", lead with the biggest
trend in two or three sentences, cover the next few in one sentence each, and
close with "And that's what's trending right now."

USER POSTS STYLE:
Group the person's posts into themes, quote the most notable ones, and close with
"That's the latest from [Name]'s feed."

GUIDELINES:
- Synthesize posts into coherent stories, never just list them
- Skip trends that look like spam or lack context
- Keep a broadcast to about 45-60 seconds when spoken
- Always use the tools to fetch real data, never make up news
- If a tool fails, apologize briefly and offer alternatives
- Before posting or sending a message, read the text back and confirm it"""


def time_of_day(now: datetime) -> str:
    if now.hour < 12:
        return "morning"
    if now.hour < 17:
        return "afternoon"
    return "evening"


def liked_authors(identity: CallerIdentity, limit: int = MAX_GREETING_AUTHORS) -> List[str]:
    """
    Distinct authors of the caller's liked posts, in first-seen order.

    Authors are rendered as "Name (@username)" when both differ, otherwise by
    whichever of the two is known.
    """
    authors: List[str] = []
    for post in identity.liked_posts:
        name = post.author_name or post.author_username
        username = post.author_username
        if name and username and name != username:
            label = f"{name} (@{username})"
        else:
            label = username or name
        if label and label not in authors:
            authors.append(label)
        if len(authors) == limit:
            break
    return authors


def build_greeting_prompt(identity: Optional[CallerIdentity], now: Optional[datetime] = None) -> str:
    """
    Text of the scripted opening turn.

    Args:
        identity: The caller's linked account, or None for an anonymous caller
        now: Local time used for the greeting (defaults to the current time)

    Returns:
        str: Instruction for the AI's first spoken response
    """
    period = time_of_day(now or datetime.now())

    if identity is None:
        return (
            f'Greet the caller with "Good {period}." Introduce yourself briefly as '
            "their AI news anchor and ask if they'd like to hear about global trends "
            "or a specific topic. Keep it concise."
        )

    name = identity.spoken_name
    circle = ""
    authors = liked_authors(identity)
    if authors:
        circle = (
            ", or on what your circle's been talking about, like "
            f"{', '.join(authors)} from accounts you've been liking"
        )
    return (
        f'Greet {name} with "Good {period}, {name}." Then say you can brief them on '
        f'global trends{circle}. End with "What sounds good?" Keep it concise and natural.'
    )
