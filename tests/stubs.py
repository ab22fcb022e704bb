import redis


class StubPipeline:
    """Queues commands and applies them to the owning StubRedis on execute()."""

    def __init__(self, client: "StubRedis"):
        self.client = client
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return queue

    def execute(self):
        results = [getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


class StubRedis:
    """
    In-memory stand-in for the handful of redis-py commands the service uses.
    """

    def __init__(self):
        self.values = {}
        self.sorted_sets = {}
        self.expirations = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ex=None):
        self.values[key] = str(value)
        if ex is not None:
            self.expirations[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            if self.sorted_sets.pop(key, None) is not None:
                removed += 1
            self.expirations.pop(key, None)
        return removed

    def expire(self, key, seconds):
        self.expirations[key] = seconds
        return True

    def zadd(self, key, mapping):
        self.sorted_sets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zremrangebyscore(self, key, low, high):
        members = self.sorted_sets.get(key, {})
        stale = [member for member, score in members.items() if low <= score <= high]
        for member in stale:
            del members[member]
        return len(stale)

    def zcard(self, key):
        return len(self.sorted_sets.get(key, {}))

    def zcount(self, key, low, high):
        return sum(1 for score in self.sorted_sets.get(key, {}).values() if low <= score <= high)

    def pipeline(self):
        return StubPipeline(self)

    def close(self):
        pass


class FailingRedis:
    """Every command fails as if the server were down."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("Connection refused")

        return fail
