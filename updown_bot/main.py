from __future__ import annotations

from dotenv import load_dotenv

from updown_bot.config import load_settings
from updown_bot.runtime.app import run_main


def main() -> None:
    load_dotenv()
    run_main(load_settings())


if __name__ == "__main__":
    main()
