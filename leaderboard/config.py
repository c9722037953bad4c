import os

from dotenv import load_dotenv
load_dotenv()  # .envファイルを自動で読み込む

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://leaderboard_mongo:27017/?replicaSet=rs0")
REDIS_URI = os.getenv("REDIS_URI", "redis://leaderboard_redis:6379/0")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "leaderboard")
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

# コレクション名
MEMBERS_COLLECTION = "members"
REQUESTS_COLLECTION = "pointRequests"

# 認証プロバイダ種別（supabase or firebase）
AUTH_PROVIDER = os.getenv("AUTH_PROVIDER", "supabase")

SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", None)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", None)

# IDトークンを保持するクッキー名
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "lb_session")

# サインアップ時の admin 選択を許可するか
ALLOW_ADMIN_SIGNUP = os.getenv("ALLOW_ADMIN_SIGNUP", "true").lower() == "true"

# 空なら ntfy 通知は送らない
NTFY_TOPIC = os.getenv("NTFY_TOPIC", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

if AUTH_PROVIDER == "supabase" and not SUPABASE_JWT_SECRET:
    raise RuntimeError("SUPABASE_JWT_SECRET is required for Supabase auth")
if AUTH_PROVIDER == "firebase" and not FIREBASE_PROJECT_ID:
    raise RuntimeError("FIREBASE_PROJECT_ID is required for Firebase auth")
