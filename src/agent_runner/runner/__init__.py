"""Turn protocol layer between the host and the codex CLI.

Why a polled directory instead of a socket or a pipe?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
The runner lives inside a container whose only shared surface with the host
is a bind-mounted workspace. Stdin is consumed once for the initial input
document and stdout is reserved for marker-delimited result records, so
follow-up messages travel as small JSON files dropped into
``ipc/input/`` and a ``_close`` sentinel ends the run. Polling keeps both
sides free of any notification machinery; ``session.MessageSource`` is the
seam where a change-notification primitive could replace it.
"""
