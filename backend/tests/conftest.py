import os

# Settings are read once per process; the required backend keys must exist
# before any autopen module is imported.
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.pop("REDIS_URL", None)
