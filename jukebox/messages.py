"""Centralized message/i18n system.

Primary language: EN. Optional ES toggle via config.language ('en'|'es').
Templates use str.format placeholders; callers pass values through msg().
"""

_EN = {
	"NOT_IN_VOICE": "❌ You must be in a voice channel.",
	"JOINED": "✅ Joined the voice channel.",
	"JOIN_FAILED": "❌ I couldn't join the voice channel.",
	"MISSING_QUERY": "❌ You must provide a song or URL.",
	"SPOTIFY_FAILED": "❌ I couldn't get the song from Spotify.",
	"PLAYING_CACHED": "🎶 Playing (cached): **{title}**",
	"SONG_NOT_FOUND": "❌ I could not find the song.",
	"PLAY_FAILED": "❌ Error while trying to play the song.",
	"NO_MORE_SONGS": "❌ There are no more songs queued.",
	"SKIPPED": "⏭ Skipped.",
	"NOTHING_PLAYING": "❌ Nothing is playing.",
	"STOPPED": "🛑 Music stopped and queue cleared.",
	"QUEUE_EMPTY": "❌ There are no songs queued.",
	"QUEUE_HEADER": "🎶 **Queue:**",
	"QUEUE_LINE": "**{index}**. {title} `[{duration}]`",
	"NOT_CONNECTED": "❌ I'm not in a voice channel.",
	"LEFT": "👋 Bye.",
	"NOW_PLAYING": "▶️ **Now playing:** {title} `[{duration}]`",
	"SONG_ADDED": "➕ **{title}** added to the queue.",
	"COMMAND_ERROR": "❌ Something went wrong while running that command.",
}

_ES = {
	"NOT_IN_VOICE": "❌ Debes estar en un canal de voz.",
	"JOINED": "✅ Me uní al canal de voz.",
	"JOIN_FAILED": "❌ No pude unirme al canal de voz.",
	"MISSING_QUERY": "❌ Debes proporcionar una canción o URL.",
	"SPOTIFY_FAILED": "❌ No pude obtener la canción desde Spotify.",
	"PLAYING_CACHED": "🎶 Reproduciendo (cached): **{title}**",
	"SONG_NOT_FOUND": "❌ No pude encontrar la canción.",
	"PLAY_FAILED": "❌ Error al intentar reproducir la canción.",
	"NO_MORE_SONGS": "❌ No hay más canciones en la cola.",
	"SKIPPED": "⏭ Saltado.",
	"NOTHING_PLAYING": "❌ No hay música reproduciéndose.",
	"STOPPED": "🛑 Música detenida y cola vaciada.",
	"QUEUE_EMPTY": "❌ No hay canciones en la cola.",
	"QUEUE_HEADER": "🎶 **Cola:**",
	"QUEUE_LINE": "**{index}**. {title} `[{duration}]`",
	"NOT_CONNECTED": "❌ No estoy en un canal de voz.",
	"LEFT": "👋 Adiós.",
	"NOW_PLAYING": "▶️ **Reproduciendo:** {title} `[{duration}]`",
	"SONG_ADDED": "➕ **{title}** añadida a la cola.",
	"COMMAND_ERROR": "❌ Algo salió mal al ejecutar ese comando.",
}

_ACTIVE = _EN

def set_language(lang: str):
	global _ACTIVE
	if lang and lang.lower().startswith("es"):
		_ACTIVE = _ES
	else:
		_ACTIVE = _EN

def msg(key: str, **fields) -> str:
	template = _ACTIVE.get(key, _EN.get(key, key))
	if fields:
		return template.format(**fields)
	return template
