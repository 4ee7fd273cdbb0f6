import asyncio
import hashlib
import time

from redis.exceptions import ConnectionError, NoScriptError

from redis_rate.scripts import ScriptRegistry

SCRIPT_NAMES = {script.sha: script.name for script in ScriptRegistry()}

DEFAULT_REPLIES = {
    "allow_n": [1, 9, b"-1", b"0.1"],
    "allow_at_most": [3, 0, b"0.25", b"1.5"],
    "concurrency_take": [1, 1],
}


class ScriptedPipeline:
    """Records the commands queued on it and answers them through its
    client on execute, one list of commands per round trip.
    """

    def __init__(self, client):
        self.client = client
        self.commands = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.commands = []

    def script_exists(self, *shas):
        self.commands.append(("SCRIPT EXISTS", *shas))
        return self

    def script_load(self, source):
        self.commands.append(("SCRIPT LOAD", source))
        return self

    def evalsha(self, sha, numkeys, *keys_and_args):
        self.commands.append(("EVALSHA", sha, numkeys, *keys_and_args))
        return self

    def hdel(self, key, *fields):
        self.commands.append(("HDEL", key, *fields))
        return self

    def execute(self, raise_on_error=True):
        commands, self.commands = self.commands, []
        if self.client.latency:
            time.sleep(self.client.latency)
        return self.client.round_trip(commands, raise_on_error)


class ScriptedRedis:
    """A fake Redis client, enough for the limiter's pipelines.

    Parameters:
      loaded(bool): Whether the scripts are already cached.
      forgetful(bool): When true, loaded scripts are forgotten right away,
        like a cluster whose nodes disagree.
      latency(float): Seconds spent on every round trip.
    """

    def __init__(self, *, loaded=False, forgetful=False, latency=0):
        self.latency = latency
        self.scripts = set(SCRIPT_NAMES) if loaded else set()
        self.forgetful = forgetful
        self.replies = dict(DEFAULT_REPLIES)
        self.round_trips = []
        self.deleted = []
        self.error = None
        self.exists_override = None

    def pipeline(self, transaction=True):
        assert transaction is False
        return ScriptedPipeline(self)

    def delete(self, *keys):
        self.deleted.extend(keys)
        return len(keys)

    def round_trip(self, commands, raise_on_error=True):
        self.round_trips.append(commands)
        if self.error is not None:
            raise self.error
        replies = [self.reply(command) for command in commands]
        if raise_on_error:
            for reply in replies:
                if isinstance(reply, Exception):
                    raise reply
        return replies

    def reply(self, command):
        name = command[0]
        if name == "SCRIPT EXISTS":
            if self.exists_override is not None:
                return self.exists_override
            return [sha in self.scripts for sha in command[1:]]
        if name == "SCRIPT LOAD":
            sha = hashlib.sha1(command[1].encode("utf-8")).hexdigest()
            if not self.forgetful:
                self.scripts.add(sha)
            return sha
        if name == "EVALSHA":
            sha = command[1]
            if sha not in self.scripts:
                return NoScriptError("No matching script. Please use EVAL.")
            return self.replies[SCRIPT_NAMES[sha]]
        if name == "HDEL":
            return 1
        raise AssertionError(f"unexpected command {name}")

    def commands_named(self, name):
        return [command for commands in self.round_trips for command in commands if command[0] == name]


class AsyncScriptedPipeline(ScriptedPipeline):
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.commands = []

    async def execute(self, raise_on_error=True):
        commands, self.commands = self.commands, []
        if self.client.latency:
            await asyncio.sleep(self.client.latency)
        return self.client.round_trip(commands, raise_on_error)


class AsyncScriptedRedis(ScriptedRedis):
    def pipeline(self, transaction=True):
        assert transaction is False
        return AsyncScriptedPipeline(self)

    async def delete(self, *keys):
        if self.latency:
            await asyncio.sleep(self.latency)
        return super().delete(*keys)


def connection_error():
    return ConnectionError("Error 111 connecting to localhost:6481. Connection refused.")
