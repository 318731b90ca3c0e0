"""Redis Lua scripts for the fixed-window limiter.

Each script runs as one atomic unit on the server, so concurrent callers on
any instance see either none or all of its effects.
"""

# Create-only initialization of a bucket.
# KEYS: quota, remaining, reset. ARGV: quota, remaining, reset_at, ttl.
# Writes nothing and returns 0 if any of the keys already exists, so a caller
# that lost the creation race never overwrites the winner's bucket.
CREATE_BUCKET_SCRIPT = """
    if redis.call('EXISTS', KEYS[1], KEYS[2], KEYS[3]) > 0 then
        return 0
    end
    local ttl = tonumber(ARGV[4])
    redis.call('SET', KEYS[1], ARGV[1], 'EX', ttl)
    redis.call('SET', KEYS[2], ARGV[2], 'EX', ttl)
    redis.call('SET', KEYS[3], ARGV[3], 'EX', ttl)
    return 1
"""

# Decrement-if-positive of the remaining counter.
# KEYS: remaining. Returns {status, value}:
#   { 1, new}  decremented
#   { 0, 0}    already exhausted, nothing written
#   {-1, 0}    key missing (window expired), nothing written
#   {-2, raw}  stored value is not a plain decimal integer
# DECR keeps the key's TTL; a missing key is never recreated.
DECREMENT_IF_POSITIVE_SCRIPT = """
    local raw = redis.call('GET', KEYS[1])
    if not raw then
        return {-1, 0}
    end
    if not string.match(raw, '^%-?%d+$') then
        return {-2, raw}
    end
    local current = tonumber(raw)
    if current <= 0 then
        return {0, 0}
    end
    return {1, redis.call('DECR', KEYS[1])}
"""

STATUS_DECREMENTED = 1
STATUS_EXHAUSTED = 0
STATUS_MISSING = -1
STATUS_CORRUPTED = -2
