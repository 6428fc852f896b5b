import os

from supabase import Client, create_client


class ClientHolder:
    """Lazily builds one Supabase client per holder."""

    def __init__(self):
        self._client: Client | None = None

    def get(self) -> Client:
        if self._client is None:
            url = os.environ.get("SUPABASE_URL")
            key = os.environ.get("SUPABASE_KEY")
            if not url or not key:
                raise ValueError("Supabase settings missing (SUPABASE_URL / SUPABASE_KEY)")
            self._client = create_client(url, key)
        return self._client


_holder = ClientHolder()


def get_supabase_client() -> Client:
    return _holder.get()
