from __future__ import annotations

import json


def _load_object(data: bytes) -> dict:
    doc = json.loads(data)
    if not isinstance(doc, dict):
        raise ValueError("search response is not an object")
    return doc


def parse_twitter_search(data: bytes) -> list[dict]:
    doc = _load_object(data)
    users: dict[str, dict] = {}
    for user in (doc.get("includes") or {}).get("users") or []:
        users[str(user.get("id"))] = user

    records: list[dict] = []
    for tweet in doc.get("data") or []:
        author_id = str(tweet.get("author_id") or "")
        user = users.get(author_id) or {}
        username = user.get("username")
        metrics = tweet.get("public_metrics") or {}
        records.append(
            {
                "id": str(tweet.get("id") or ""),
                "content": tweet.get("text") or "",
                "author": username,
                "author_id": author_id or None,
                "created_at": tweet.get("created_at"),
                "url": f"https://twitter.com/{username}/status/{tweet.get('id')}"
                if username
                else None,
                "likes": metrics.get("like_count") or 0,
                "shares": metrics.get("retweet_count") or 0,
                "replies": metrics.get("reply_count") or 0,
                "verified": bool(user.get("verified")),
            }
        )
    return records


def parse_bluesky_search(data: bytes) -> list[dict]:
    doc = _load_object(data)
    records: list[dict] = []
    for post in doc.get("posts") or []:
        uri = str(post.get("uri") or "")
        author = post.get("author") or {}
        handle = author.get("handle")
        post_record = post.get("record") or {}

        rkey = ""
        if "/app.bsky.feed.post/" in uri:
            rkey = uri.split("/app.bsky.feed.post/", maxsplit=1)[-1].strip()

        records.append(
            {
                "id": uri,
                "content": str(post_record.get("text") or "").strip(),
                "author": handle,
                "author_id": author.get("did"),
                "created_at": post_record.get("createdAt"),
                "url": f"https://bsky.app/profile/{handle}/post/{rkey}"
                if handle and rkey
                else None,
                "likes": post.get("likeCount") or 0,
                "shares": post.get("repostCount") or 0,
                "replies": post.get("replyCount") or 0,
                "verified": False,
            }
        )
    return records


def parse_bluesky_session(data: bytes) -> str:
    doc = _load_object(data)
    token = str(doc.get("accessJwt") or "").strip()
    if not token:
        raise ValueError("session response has no accessJwt")
    return token
