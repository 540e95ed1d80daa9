"""Logs what happens on IRC and remembers recent messages."""
import logging

logger = logging.getLogger(__name__)


class Log:
    """
    Plugin that logs connection, channel and message events.

    Messages (received and sent) are also appended to the context's history, except for those in secret channels,
    which are neither kept nor logged.
    """

    def on_connect(self, bot):
        logger.info("Connected as %s", bot.nickname)

    def on_disconnect(self, bot, expected=False):
        if expected:
            logger.info("Disconnected")
        else:
            logger.error("Connection lost")

    def on_join(self, bot, channel, user):
        logger.info("%s joined %s", user, channel)

    def on_part(self, bot, channel, user, message=None):
        logger.info("%s left %s (%s)", user, channel, message or '')

    def on_kick(self, bot, channel, target, by, reason=None):
        logger.warning("%s was kicked from %s by %s (%s)", target, channel, by, reason or '')

    def on_nick_change(self, bot, old, new):
        logger.info("%s is now known as %s", old, new)

    def on_quit(self, bot, user, message=None):
        logger.info("%s quit (%s)", user, message or '')

    def on_notice(self, bot, message):
        logger.warning("Notice from %s: %s", message.user, message.text)

    def on_message(self, bot, message):
        self.record(bot, message)

    def on_message_sent(self, bot, message):
        self.record(bot, message)

    @staticmethod
    def record(bot, message):
        if message.is_channel and bot.context.is_secret(message.source):
            return
        bot.context.history.append(message)
        logger.info("[%s] <%s> %s", message.source if message.is_channel else "Private", message.user, message.text)
