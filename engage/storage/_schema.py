SCHEMA_VERSION = 2

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied_at REAL NOT NULL
);

-- Campaigns: advertiser-funded visit campaigns (amounts in milli-coins)
CREATE TABLE IF NOT EXISTS campaigns (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id           TEXT NOT NULL,
    title              TEXT NOT NULL,
    url                TEXT NOT NULL,
    payout_milli       INTEGER NOT NULL CHECK (payout_milli >= 1),
    watch_duration     INTEGER NOT NULL DEFAULT 30,
    total_completions  INTEGER NOT NULL CHECK (total_completions >= 1),
    served_completions INTEGER NOT NULL DEFAULT 0,
    is_paused          INTEGER NOT NULL DEFAULT 0,
    is_finished        INTEGER NOT NULL DEFAULT 0,
    total_paid_milli   INTEGER NOT NULL DEFAULT 0,
    created_at         REAL NOT NULL,
    updated_at         REAL NOT NULL,
    CHECK (served_completions >= 0 AND served_completions <= total_completions)
);

-- Campaign quiz: exactly five questions per campaign
CREATE TABLE IF NOT EXISTS campaign_questions (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    campaign_id    INTEGER NOT NULL,
    question_id    INTEGER NOT NULL,
    position       INTEGER NOT NULL,
    input_type     TEXT NOT NULL CHECK (input_type IN ('dropdown', 'mcq', 'free_text')),
    options_json   TEXT NOT NULL DEFAULT '[]',
    correct_answer TEXT NOT NULL,
    synonyms_json  TEXT NOT NULL DEFAULT '[]',
    UNIQUE (campaign_id, question_id),
    FOREIGN KEY (campaign_id) REFERENCES campaigns(id) ON DELETE CASCADE
);

-- Wallets: cached aggregates over wallet_transactions
CREATE TABLE IF NOT EXISTS wallets (
    user_id               TEXT PRIMARY KEY,
    available_milli       INTEGER NOT NULL DEFAULT 0 CHECK (available_milli >= 0),
    locked_milli          INTEGER NOT NULL DEFAULT 0,
    lifetime_earned_milli INTEGER NOT NULL DEFAULT 0,
    lifetime_spent_milli  INTEGER NOT NULL DEFAULT 0,
    created_at            REAL NOT NULL,
    updated_at            REAL NOT NULL
);

-- Wallet transactions: append-only ledger, one row per reference id
CREATE TABLE IF NOT EXISTS wallet_transactions (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id             TEXT NOT NULL,
    type                TEXT NOT NULL CHECK (type IN ('EARNED', 'SPENT', 'BONUS', 'REFUND', 'ADMIN_CREDIT', 'ADMIN_DEBIT')),
    sign                TEXT NOT NULL CHECK (sign IN ('PLUS', 'MINUS')),
    amount_milli        INTEGER NOT NULL CHECK (amount_milli > 0),
    status              TEXT NOT NULL DEFAULT 'SUCCESS' CHECK (status IN ('SUCCESS', 'PENDING', 'FAILED', 'REVERSED')),
    balance_after_milli INTEGER,
    campaign_id         INTEGER,
    source              TEXT NOT NULL DEFAULT '',
    reference_id        TEXT NOT NULL UNIQUE,
    metadata_json       TEXT NOT NULL DEFAULT '{}',
    created_at          REAL NOT NULL,
    FOREIGN KEY (user_id) REFERENCES wallets(user_id),
    FOREIGN KEY (campaign_id) REFERENCES campaigns(id) ON DELETE SET NULL
);

-- Wallet audit log: who changed which wallet and why
CREATE TABLE IF NOT EXISTS wallet_audit_logs (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    actor_type    TEXT NOT NULL CHECK (actor_type IN ('SYSTEM', 'ADMIN')),
    actor_id      TEXT,
    user_id       TEXT NOT NULL,
    action        TEXT NOT NULL,
    txn_id        INTEGER,
    amount_milli  INTEGER,
    reason        TEXT NOT NULL DEFAULT '',
    metadata_json TEXT NOT NULL DEFAULT '{}',
    created_at    REAL NOT NULL
);

-- Daily claim counters: one row per (user, campaign, civil day)
CREATE TABLE IF NOT EXISTS daily_claim_counters (
    user_id     TEXT NOT NULL,
    campaign_id INTEGER NOT NULL,
    date_key    TEXT NOT NULL,
    attempts    INTEGER NOT NULL DEFAULT 0,
    updated_at  REAL NOT NULL,
    PRIMARY KEY (user_id, campaign_id, date_key),
    FOREIGN KEY (campaign_id) REFERENCES campaigns(id) ON DELETE CASCADE
);

-- Claim activity: last successful claim per pair (cooldown only)
CREATE TABLE IF NOT EXISTS claim_activity (
    user_id         TEXT NOT NULL,
    campaign_id     INTEGER NOT NULL,
    last_claimed_at REAL NOT NULL,
    PRIMARY KEY (user_id, campaign_id),
    FOREIGN KEY (campaign_id) REFERENCES campaigns(id) ON DELETE CASCADE
);

-- Rotation tracking: when a campaign was last shown to a user
CREATE TABLE IF NOT EXISTS rotation_tracking (
    user_id        TEXT NOT NULL,
    campaign_id    INTEGER NOT NULL,
    last_served_at REAL NOT NULL,
    serve_count    INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, campaign_id),
    FOREIGN KEY (campaign_id) REFERENCES campaigns(id) ON DELETE CASCADE
);

-- Enforcement log: every eligibility decision
CREATE TABLE IF NOT EXISTS enforcement_logs (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id            TEXT NOT NULL,
    campaign_id        INTEGER NOT NULL,
    payout_milli       INTEGER NOT NULL,
    tier               TEXT NOT NULL CHECK (tier IN ('HIGH', 'MEDIUM', 'LOW')),
    outcome            TEXT NOT NULL CHECK (outcome IN ('ALLOW', 'LIMIT_REACHED', 'COOLDOWN_ACTIVE', 'ACTIVE_SESSION_EXISTS', 'CAMPAIGN_UNAVAILABLE')),
    attempts           INTEGER NOT NULL DEFAULT 0,
    attempt_limit      INTEGER NOT NULL DEFAULT 0,
    seconds_since_last REAL,
    retry_after_sec    INTEGER,
    created_at         REAL NOT NULL
);

-- Quiz attempts: write-once grading result per session token
CREATE TABLE IF NOT EXISTS quiz_attempts (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    session_token TEXT NOT NULL UNIQUE,
    campaign_id   INTEGER,
    user_id       TEXT NOT NULL,
    correct_count INTEGER NOT NULL CHECK (correct_count BETWEEN 0 AND 5),
    total_count   INTEGER NOT NULL DEFAULT 5,
    passed        INTEGER NOT NULL,
    multiplier    REAL NOT NULL,
    reward_milli  INTEGER NOT NULL DEFAULT 0,
    created_at    REAL NOT NULL,
    FOREIGN KEY (campaign_id) REFERENCES campaigns(id) ON DELETE SET NULL
);

-- Consolation rewards: platform-funded payout when a campaign disappears mid-task
CREATE TABLE IF NOT EXISTS consolation_rewards (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    session_token      TEXT NOT NULL UNIQUE,
    campaign_id        INTEGER,
    origin_campaign_id INTEGER NOT NULL DEFAULT 0,
    user_id            TEXT NOT NULL,
    amount_milli       INTEGER NOT NULL,
    reason             TEXT NOT NULL CHECK (reason IN ('EXHAUSTED_VISITS_CAP', 'EXHAUSTED_COINS', 'CAMPAIGN_PAUSED', 'CAMPAIGN_DELETED')),
    date_key           TEXT NOT NULL,
    created_at         REAL NOT NULL,
    FOREIGN KEY (campaign_id) REFERENCES campaigns(id) ON DELETE SET NULL
);

-- Claim sessions: single-use visit tokens (campaign id survives deletion)
CREATE TABLE IF NOT EXISTS claim_sessions (
    token       TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    campaign_id INTEGER NOT NULL,
    created_at  REAL NOT NULL,
    expires_at  REAL NOT NULL,
    consumed_at REAL
);

-- Runtime limit configuration (JSON blobs keyed by name)
CREATE TABLE IF NOT EXISTS limit_config (
    config_key   TEXT PRIMARY KEY,
    config_value TEXT NOT NULL,
    description  TEXT NOT NULL DEFAULT '',
    updated_at   REAL NOT NULL
);

-- Fixed-window request counters for the URL validator
CREATE TABLE IF NOT EXISTS rate_limit_windows (
    identifier      TEXT NOT NULL,
    identifier_type TEXT NOT NULL CHECK (identifier_type IN ('USER', 'IP')),
    window_start    INTEGER NOT NULL,
    request_count   INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (identifier, identifier_type, window_start)
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_campaigns_owner ON campaigns(owner_id);
CREATE INDEX IF NOT EXISTS idx_campaigns_active ON campaigns(is_paused, is_finished);
CREATE INDEX IF NOT EXISTS idx_questions_campaign ON campaign_questions(campaign_id, position);
CREATE INDEX IF NOT EXISTS idx_wallet_txn_user ON wallet_transactions(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_wallet_txn_campaign ON wallet_transactions(campaign_id);
CREATE INDEX IF NOT EXISTS idx_wallet_audit_user ON wallet_audit_logs(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_daily_counters_date ON daily_claim_counters(date_key);
CREATE INDEX IF NOT EXISTS idx_enforcement_campaign ON enforcement_logs(campaign_id, created_at);
CREATE INDEX IF NOT EXISTS idx_enforcement_user ON enforcement_logs(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_quiz_attempts_user ON quiz_attempts(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_consolation_user_day ON consolation_rewards(user_id, date_key);
CREATE INDEX IF NOT EXISTS idx_consolation_origin_day ON consolation_rewards(origin_campaign_id, date_key);
CREATE INDEX IF NOT EXISTS idx_consolation_day ON consolation_rewards(date_key);
CREATE INDEX IF NOT EXISTS idx_claim_sessions_user ON claim_sessions(user_id, campaign_id);
CREATE INDEX IF NOT EXISTS idx_rate_limit_start ON rate_limit_windows(window_start);
"""
