from contextlib import asynccontextmanager

from fastapi import FastAPI

from assignment_bot import __version__
from assignment_bot.allowlist import Allowlist
from assignment_bot.clients import GeminiClient, GroqClient
from assignment_bot.config import settings
from assignment_bot.database import init_db
from assignment_bot.logging_setup import setup_logging
from assignment_bot.routes import courses, messages
from assignment_bot.services.course_directory import CourseDirectory
from assignment_bot.services.ingestion import build_engine
from assignment_bot.services.schedule import ScheduleOracle
from assignment_bot.services.store import ProcessedMessages


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, load the course directory and timetable, wire the engine."""
    setup_logging(settings.log_level)
    await init_db()
    directory = await CourseDirectory.load()
    oracle = ScheduleOracle.from_file(settings.schedule_path, directory)
    gemini = GeminiClient()

    app.state.engine = build_engine(
        directory, oracle, groq_client=GroqClient(), gemini_client=gemini
    )
    app.state.allowlist = Allowlist()
    app.state.processed = ProcessedMessages()
    yield
    await gemini.aclose()


app = FastAPI(
    title="assignment-bot",
    description="Assignment ingestion for academic group chats",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(messages.router)
app.include_router(courses.router)
