# infrastructure/storage/schema.py
"""Table and index definitions shared by the stores and the setup script"""

TABLES = {
    "tasks": """
        CREATE TABLE IF NOT EXISTS tasks (
            task_id VARCHAR(36) PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT DEFAULT '',
            task_type VARCHAR(50) NOT NULL,
            assignee VARCHAR(50),
            status VARCHAR(30) NOT NULL,
            input_data JSONB DEFAULT '{}',
            result JSONB,
            error TEXT,
            priority INTEGER DEFAULT 3,
            estimated_cost NUMERIC(10, 4) DEFAULT 0,
            can_create_subtasks BOOLEAN DEFAULT FALSE,
            source VARCHAR(30) DEFAULT 'human',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            started_at TIMESTAMP,
            completed_at TIMESTAMP
        )
    """,
    "conversation_sessions": """
        CREATE TABLE IF NOT EXISTS conversation_sessions (
            session_id VARCHAR(100) PRIMARY KEY,
            messages JSONB NOT NULL DEFAULT '[]',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "budget_state": """
        CREATE TABLE IF NOT EXISTS budget_state (
            budget_date VARCHAR(10) PRIMARY KEY,
            tokens_used BIGINT DEFAULT 0,
            cost_usd NUMERIC(12, 6) DEFAULT 0,
            api_calls INTEGER DEFAULT 0,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "circuit_breaker_state": """
        CREATE TABLE IF NOT EXISTS circuit_breaker_state (
            breaker_name VARCHAR(100) PRIMARY KEY,
            consecutive_errors INTEGER DEFAULT 0,
            tripped BOOLEAN DEFAULT FALSE,
            last_error TEXT,
            tripped_at TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_priority ON tasks(priority, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_title ON tasks(title)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_updated ON conversation_sessions(updated_at)",
)

async def create_schema(conn) -> None:
    for statement in TABLES.values():
        await conn.execute(statement)
    for statement in INDEXES:
        await conn.execute(statement)
