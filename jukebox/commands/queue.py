from typing import Any, List

from jukebox.commands import reply
from jukebox.messages import msg

# Discord rejects messages longer than this.
MESSAGE_LIMIT = 2000


def render_queue(songs: List[Any]) -> List[str]:
    """One 1-indexed "title [duration]" line per song, in queue order."""
    return [
        msg("QUEUE_LINE", index=i, title=song.name, duration=song.formatted_duration)
        for i, song in enumerate(songs, start=1)
    ]


def chunk_lines(lines: List[str], limit: int = MESSAGE_LIMIT) -> List[str]:
    chunks: List[str] = []
    current = ""
    for line in lines:
        line = line[:limit]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


async def show_queue(runtime: Any, message, args: List[str]) -> None:
    queue = runtime.engine.get_queue(message.guild.id)
    if queue is None:
        await reply(message, msg("QUEUE_EMPTY"))
        return
    for chunk in chunk_lines([msg("QUEUE_HEADER")] + render_queue(queue.songs)):
        await reply(message, chunk)
