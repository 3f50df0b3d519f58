"""Run the engine with uvicorn: ``python -m genui`` or the ``genui`` script.

GENUI_HOST and GENUI_PORT override the bind address.
"""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "genui.main:app",
        host=os.environ.get("GENUI_HOST", "0.0.0.0"),
        port=int(os.environ.get("GENUI_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
