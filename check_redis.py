import redis

from config import REDIS_URL
from utilities.constants import GRADING_LEASE_KEY


def check_redis(redis_url=REDIS_URL):
    """Pings Redis and lists the grading leases currently held. Returns the lease map."""
    print(f"Attempting to connect to Redis at: {redis_url}")
    try:
        r = redis.from_url(redis_url, decode_responses=True)
        r.ping()
    except redis.exceptions.ConnectionError as e:
        print("\nFailed to connect to Redis. Please check your REDIS_URL and ensure Redis is running.")
        print(f"Error details: {e}")
        return None

    print("Successfully connected to Redis.")
    leases = {}
    for key in r.scan_iter(match=GRADING_LEASE_KEY.format(interview_id='*')):
        leases[key] = (r.get(key), r.ttl(key))
    if not leases:
        print("No grading runs hold a lease.")
    for key, (holder, ttl) in sorted(leases.items()):
        print(f"  {key} held by {holder}, expires in {ttl}s")
    return leases


if __name__ == "__main__":
    check_redis()
