from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import redis
import stripe

from storefront.domain.errors import TransientStorageError


# tylko błędy sieci; błędy odpowiedzi API (karta, walidacja) nie są ponawiane
def payment_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(stripe.APIConnectionError),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )


#cała transakcja jest atomowa, więc powtórzenie jej w całości jest bezpieczne
def storage_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(TransientStorageError),
    )
