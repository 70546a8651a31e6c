import asyncio
from src.database import engine, Base

# Import all models to ensure they are registered in Base.metadata
from src.artifacts.models import Chart, CsvTable
from src.chat.models import ChatMessage, ChatSession
from src.patents.models import CachedPatent

async def init_models():
    async with engine.begin() as conn:
        # await conn.run_sync(Base.metadata.drop_all) # Optional: Reset DB
        await conn.run_sync(Base.metadata.create_all)
    print("Database tables created: chat_sessions, chat_messages, cached_patents, charts, csv_tables.")

if __name__ == "__main__":
    asyncio.run(init_models())
