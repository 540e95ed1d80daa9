"""Runs the bot: ``python -m ircgate bot.ini``"""
import argparse
import logging

from ircgate.bot import Bot


def main(argv=None):
    parser = argparse.ArgumentParser(prog='ircgate', description="Command-driven IRC bot.")
    parser.add_argument('config', help="INI file to read the configuration from.")
    parser.add_argument('-v', '--verbose', action='store_true', help="Log debug messages.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    bot = Bot(filename=args.config)
    bot.run()


if __name__ == '__main__':
    main()
