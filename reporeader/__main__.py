# reporeader/__main__.py

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "reporeader.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5555")),
    )


if __name__ == "__main__":
    main()
