import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import quote

import requests

from .cards import CardSlot, CustomCard, RemoteCard, ResolvedImages, is_double_faced_layout

SCRYFALL_API = "https://api.scryfall.com"
IMAGE_VERSION_PREFERENCE = ("png", "large", "normal", "small")
MAX_RATE_LIMIT_RETRIES = 3
RATE_LIMIT_BACKOFF_S = 5


# --- THREAD-SAFE RATE LIMITER ---
class RateLimiter:
    def __init__(self, min_interval=0.1):
        self.min_interval = min_interval
        self.last_request_time = 0
        self.lock = threading.Lock()

    def wait(self):
        with self.lock:
            current_time = time.time()
            elapsed = current_time - self.last_request_time
            wait_time = self.min_interval - elapsed

            if wait_time > 0:
                self.last_request_time = current_time + wait_time
            else:
                self.last_request_time = current_time
                wait_time = 0

        if wait_time > 0:
            time.sleep(wait_time)


scryfall_limiter = RateLimiter(min_interval=0.1)


def get_clean_filename(card, is_back=False):
    suffix = "_back" if is_back else ""
    safe_name = (
        card.name
        .replace(' // ', '_')
        .replace(',', '')
        .replace(' ', '_')
        .replace('"', '')
        .replace('/', '_')
        .lower()
    )
    safe_name = safe_name[:100]
    return f"{safe_name}_{card.set_code or 'any'}_{card.collector_number or 'any'}{suffix}.png"


class ScryfallSource:
    def __init__(self, session=None, image_version="png", timeout=10, cache_dir=None,
                 limiter=scryfall_limiter, backoff_s=RATE_LIMIT_BACKOFF_S, log=None):
        self.session = session or requests.Session()
        self.image_version = image_version
        self.timeout = timeout
        self.cache_dir = cache_dir
        self.limiter = limiter
        self.backoff_s = backoff_s
        self._log = log
        if cache_dir:
            os.makedirs(cache_dir, exist_ok=True)

    def log(self, message):
        if self._log:
            self._log(message)
        else:
            print(message)

    def _get(self, url):
        for _ in range(MAX_RATE_LIMIT_RETRIES + 1):
            if self.limiter is not None:
                self.limiter.wait()
            response = self.session.get(url, allow_redirects=True, timeout=self.timeout)
            if response.status_code != 429:
                return response
            self.log(f"Rate limited (429). Backing off for {self.backoff_s} seconds...")
            time.sleep(self.backoff_s)
        return response

    def card_url(self, card: RemoteCard):
        if card.scryfall_id:
            return f"{SCRYFALL_API}/cards/{card.scryfall_id}"
        if card.set_code and card.collector_number:
            return f"{SCRYFALL_API}/cards/{card.set_code.lower()}/{quote(str(card.collector_number))}"
        return f"{SCRYFALL_API}/cards/named?fuzzy={quote(card.name)}"

    def fetch_card(self, card: RemoteCard):
        url = self.card_url(card)
        try:
            response = self._get(url)
        except requests.exceptions.RequestException as e:
            self.log(f"Error fetching {card.name}: {e}")
            return None
        if response.status_code != 200:
            self.log(f"Failed to fetch {card.name} (Status {response.status_code})")
            return None
        try:
            return response.json()
        except ValueError:
            self.log(f"Error: Unexpected API response for {card.name}")
            return None

    def _pick(self, image_uris):
        if not image_uris:
            return None
        for version in (self.image_version,) + IMAGE_VERSION_PREFERENCE:
            if image_uris.get(version):
                return image_uris[version]
        return None

    def image_urls(self, card_data):
        """Return (front_url, back_url, is_double_faced) for a Scryfall card object."""
        faces = card_data.get("card_faces") or []
        double_faced = is_double_faced_layout(card_data)
        if faces and faces[0].get("image_uris"):
            front = self._pick(faces[0].get("image_uris"))
            back = self._pick(faces[1].get("image_uris")) if len(faces) > 1 else None
            return front, back, double_faced and back is not None
        return self._pick(card_data.get("image_uris")), None, False

    def _cache_path(self, card, is_back):
        if not self.cache_dir:
            return None
        return os.path.join(self.cache_dir, get_clean_filename(card, is_back))

    def download(self, url, cache_path=None):
        if cache_path and os.path.exists(cache_path):
            try:
                with open(cache_path, 'rb') as f:
                    return f.read()
            except OSError as e:
                self.log(f"Cannot read cached image {cache_path}: {e}")
        try:
            response = self._get(url)
        except requests.exceptions.RequestException as e:
            self.log(f"Error downloading image: {e}")
            return None
        if response.status_code != 200:
            self.log(f"Failed to download {url} (Status {response.status_code})")
            return None
        if cache_path:
            try:
                with open(cache_path, 'wb') as f:
                    f.write(response.content)
            except OSError as e:
                self.log(f"Cannot cache image {cache_path}: {e}")
        return response.content

    def resolve(self, card: RemoteCard) -> ResolvedImages:
        card_data = self.fetch_card(card)
        if card_data is None:
            return ResolvedImages(front=None, error=f'Card "{card.name}" not found')
        front_url, back_url, double_faced = self.image_urls(card_data)
        if front_url is None:
            return ResolvedImages(front=None, error=f"No image available for {card.name}")
        front = self.download(front_url, self._cache_path(card, False))
        back = None
        if double_faced:
            back = self.download(back_url, self._cache_path(card, True))
        error = None
        if front is None:
            error = f"Front image download failed for {card.name}"
        elif double_faced and back is None:
            error = f"Back image download failed for {card.name}"
        return ResolvedImages(front=front, back=back, is_double_faced=double_faced and back is not None, error=error)


class UploadSource:
    def resolve(self, card: CustomCard) -> ResolvedImages:
        back = card.back_image if card.has_back else None
        error = None
        if card.front_image is None:
            error = f"No uploaded front image for {card.name}"
        elif card.is_double_faced and back is None:
            error = f"Double-faced {card.name} has no uploaded back image"
        return ResolvedImages(front=card.front_image, back=back, is_double_faced=back is not None, error=error)


class CardSourceResolver:
    """Turns card entries into CardSlots, one catalog lookup per distinct card."""

    def __init__(self, remote=None, uploads=None, max_workers=4, log=None):
        self._remote = remote
        self.uploads = uploads or UploadSource()
        self.max_workers = max_workers
        self._log = log

    def log(self, message):
        if self._log:
            self._log(message)
        else:
            print(message)

    @property
    def remote(self):
        if self._remote is None:
            self._remote = ScryfallSource(log=self._log)
        return self._remote

    def resolve(self, entry) -> ResolvedImages:
        if isinstance(entry, CustomCard):
            return self.uploads.resolve(entry)
        if isinstance(entry, RemoteCard):
            return self.remote.resolve(entry)
        raise TypeError(f"Unsupported card entry: {type(entry).__name__}")

    def resolve_all(self, entries):
        """
        Resolve every entry, in parallel for catalog cards.

        Returns (slots, failures) where failures is a list of
        (entry, error message) for cards that came back incomplete.
        """
        entries = list(entries)
        results = [None] * len(entries)
        remote_jobs = {}
        for i, entry in enumerate(entries):
            if isinstance(entry, RemoteCard):
                remote_jobs.setdefault(entry.lookup_key, (entry, []))[1].append(i)
            else:
                results[i] = self.resolve(entry)

        if remote_jobs:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    key: executor.submit(self.resolve, entry)
                    for key, (entry, _) in remote_jobs.items()
                }
                for key, future in futures.items():
                    try:
                        images = future.result()
                    except Exception as e:
                        entry = remote_jobs[key][0]
                        self.log(f"Error resolving {entry.name}: {e}")
                        images = ResolvedImages(front=None, error=f"{type(e).__name__}: {e}")
                    for i in remote_jobs[key][1]:
                        results[i] = images

        slots = []
        failures = []
        for entry, images in zip(entries, results):
            slots.append(CardSlot.from_resolved(entry, images))
            if images.error:
                failures.append((entry, images.error))
        return slots, failures
