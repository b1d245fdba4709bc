"""Package entry point for ``python -m workers_transcriber``.

WHY: Users run the transcriber as ``python -m workers_transcriber input.mp3``
for CLI mode, or ``python -m workers_transcriber --serve`` for the HTTP
job server.

HOW: Checks sys.argv for the ``--serve`` flag. If present, starts the
FastAPI app under uvicorn. Otherwise, delegates to the CLI's main().

RULES:
- ``--serve`` starts the API on 0.0.0.0:8000
- Without ``--serve``, falls through to the CLI
"""

import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        from workers_transcriber.server.app import run_api
        run_api()
    else:
        from workers_transcriber.cli import main
        main()
