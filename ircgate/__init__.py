"""
Command-driven IRC bot built on Pydle.

This package holds the configuration layer; the Pydle client lives in :mod:`ircgate.bot` and the protocol-independent
command machinery in :mod:`ircgate.dispatch`.
"""
import configparser
import fractions
import re

from ircgate.access import AccessLevel

__all__ = [
    'ConfigSection', 'MainConfigSection', 'ThrottleConfigSection', 'AdminsConfigSection', 'ChannelConfigSection',
    'AliasConfigSection', 'Config',
]


def _split_list(value):
    return [item for item in re.split(r'[\s,]+', (value or '').strip()) if item]


class ConfigSection(dict):
    """
    Represents a ConfigSection

    Subclass this and override read() to convert and validate the section.

    Allows attribute-based dict access.
    """
    def __init__(self, section=None):
        """
        Initializes ourself based on a :class:`configparser.SectionProxy`

        :param section: :class:`configparser.SectionProxy` to initialize ourselves with.
        """
        super().__init__()
        self.read(section)

    def read(self, section):
        """
        Converts, initializes and validates our parameters.

        :param section: :class:`configparser.SectionProxy` to initialize ourselves with.
        """
        return True

    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError:
            raise AttributeError(item)

    def __delattr__(self, item):
        try:
            del self[item]
        except KeyError:
            raise AttributeError(item)

    __setattr__ = dict.__setitem__


class MainConfigSection(ConfigSection):
    """
    Handles main bot configuration
    """

    # noinspection PyAttributeOutsideInit
    def read(self, section):
        self.nicknames = _split_list(section.get('nick')) or ['ircgate']
        self.verify_ssl = section.getboolean('verify_ssl', True)
        self.realname = section.get('realname', self.nicknames[0])
        self.username = section.get('username', self.nicknames[0])
        self.prefix = section.get('prefix', '!')
        self.wrap_length = section.getint('wrap_length', 400)
        self.wrap_indent = section.get('wrap_indent', '...')
        self.whois_timeout = section.getfloat('whois_timeout', 10.0)
        self.history = section.getint('history', 1000)
        modules = section.get('modules')
        self.modules = _split_list(modules) if modules is not None else None

        servers = []
        for server in re.split(r',+', section.get('server', '')):
            server = server.strip()
            if not server:
                continue
            d = {'port': '6667'}
            d.update(zip(('hostname', 'port'), re.split(r'[/:]', server, 1)))
            d['tls'] = (d['port'][0] == '+')
            d['port'] = int(d['port'])
            d['tls_verify'] = d['tls'] and self.verify_ssl
            servers.append(d)
        self.servers = servers

        channels = []
        for channel in re.split(r',+', section.get('channels', '')):
            channel = channel.strip()
            if not channel:
                continue
            name, _, password = channel.partition('=')
            channels.append({'channel': name, 'password': password or None})
        self.channels = channels

        for attr in (
            'auth_method', 'auth_username', 'auth_password',
            'tls_client_cert', 'tls_client_cert_key', 'tls_client_cert_password'
        ):
            self[attr] = section.get(attr)


class ThrottleConfigSection(ConfigSection):
    # noinspection PyAttributeOutsideInit
    def read(self, section):
        def parse_float(value, default=None):
            if not value:
                return default
            return float(fractions.Fraction(value))

        def parse_cost(value, default):
            if not value:
                return default
            parts = dict(
                zip(
                    ('base', 'multiplier', 'exponent'),
                    [parse_float(part) for part in re.split(r'[\s,]+', value)]
                )
            )
            return parts.get('base', 1), parts.get('multiplier', 0), parts.get('exponent', 0)

        self.burst = section.getint('burst', 5)
        self.rate = section.getfloat('rate', 1.0)
        self.channel_burst = section.getint('channel_burst', 0)
        self.channel_rate = parse_float(section.get('channel_rate'), 0)
        self.user_burst = section.getint('user_burst', 3)
        self.user_rate = parse_float(section.get('user_rate'), 1.5)
        self.cost_base, self.cost_multiplier, self.cost_exponent = parse_cost(section.get('cost'), (1.0, 0.0, 0.0))


class AdminsConfigSection(ConfigSection):
    """
    Services accounts with elevated access, one per line::

        [admins]
        alice = root
        bob = admin

    Maps each lowercase account name to True for root, False for admin.
    """
    def read(self, section):
        for account, value in section.items():
            kind = value.strip().lower()
            if kind not in ('admin', 'root'):
                raise ValueError("[admins] {}: expected 'admin' or 'root', got {!r}".format(account, value))
            self[account.lower()] = (kind == 'root')


class ChannelConfigSection(ConfigSection):
    """Settings of one channel, from a ``[channel:#name]`` section."""
    # noinspection PyAttributeOutsideInit
    def read(self, section):
        self.password = section.get('password') or None
        self.serious = section.getboolean('serious', False)
        self.secret = section.getboolean('secret', False)


class AliasConfigSection(ConfigSection):
    """An alias definition, from an ``[alias:name]`` section."""
    # noinspection PyAttributeOutsideInit
    def read(self, section):
        self.command = section.get('command', '').strip()
        if not self.command:
            raise ValueError("[{}] needs a command".format(section.name))
        self.structure = section.get('structure') or None
        self.escape = section.getboolean('escape', False)
        self.level = AccessLevel.parse(section.get('level', 'normal'))
        self.serious = section.getboolean('serious', True)
        self.description = section.get('description') or None
        self.example = section.get('example') or None


class Config:
    """
    Handles configuration, and is a wrapper around a :class:`configparser.ConfigParser`.

    :ivar sections: Dictionary of section name -> :class:`ConfigSection`
    :ivar channels: Dictionary of lowercase channel name -> :class:`ChannelConfigSection`
    :ivar aliases: Dictionary of lowercase alias name -> :class:`AliasConfigSection`
    """
    def __init__(self, filename=None, data=None):
        """
        Creates a new Configuration.

        :param filename: Filename to load from using read_file()
        :param data: Dict or str to load from using read_data()
        """
        self._parser = configparser.ConfigParser(interpolation=None)
        self.sections = {}
        self.channels = {}
        self.aliases = {}
        if data:
            self.read_data(data)
        if filename:
            self.read_file(filename)

        self.section('main', MainConfigSection)
        self.section('throttle', ThrottleConfigSection)
        self.section('admins', AdminsConfigSection)
        for name in self._parser.sections():
            kind, _, key = name.partition(':')
            if not key:
                continue
            kind = kind.strip().lower()
            if kind == 'channel':
                self.channels[key.strip().lower()] = ChannelConfigSection(self._parser[name])
            elif kind == 'alias':
                self.aliases[key.strip().lower()] = AliasConfigSection(self._parser[name])

    def section(self, name, class_):
        """
        Reads section `name` with `class_`.  Ignored if the section is already read.  Missing sections are read as if
        they were empty.

        :param name: Config section name.
        :param class_: :class:`ConfigSection` subclass.
        """
        if name not in self.sections:
            if not self._parser.has_section(name):
                self._parser.add_section(name)
            self.sections[name] = class_(self._parser[name])
        return self.sections[name]

    def read_file(self, filename):
        """
        Reads configuration from the specified ini file

        :param filename: Filename to read
        """
        with open(filename, encoding='utf-8') as f:
            self._parser.read_file(f)

    def read_data(self, data):
        """
        Reads configuration from the specified dict or str

        :param data: String (with INI file syntax) or dict consisting of data to read
        """
        if isinstance(data, str):
            self._parser.read_string(data)
        elif isinstance(data, dict):
            self._parser.read_dict(data)

    def __getattr__(self, item):
        try:
            return self.__dict__['sections'][item]
        except KeyError:
            raise AttributeError(item)

    def __getitem__(self, item):
        return self.sections[item]
