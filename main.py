import asyncio
from core.initialization import initialize_components, load_configuration
from utils.event_bus import Topics
from utils.logger import release_logger, setup_logger

STATUS_EVERY_SECONDS = 60


async def _report_status(engine) -> None:
    while True:
        await asyncio.sleep(STATUS_EVERY_SECONDS)
        engine.log_status()


async def run_bot() -> None:
    """
    Entrypoint coroutine for the paper trading engine.

    Loads the configuration, configures a dedicated logger (rotating file +
    console) before any asynchronous work begins, builds the engine and runs
    it until cancelled. Pending paper closes are left to finish on shutdown.
    """
    config = load_configuration()
    logger = setup_logger("PaperGate", to_console=True)

    components = initialize_components(config, logger=logger)
    engine = components["engine"]
    engine.subscribe(Topics.READY_FOR_LIVE, lambda counters: logger.info(
        "🎓 Ready for live trading: %d closed, win rate %.2f, pnl $%.2f",
        counters.total_closed, counters.win_rate, counters.cumulative_pnl,
    ))

    reporter = asyncio.create_task(_report_status(engine))
    try:
        await engine.run()
    finally:
        reporter.cancel()
        await engine.shutdown()
        release_logger("PaperGate")


def main():
    try:
        asyncio.run(run_bot())
    except KeyboardInterrupt:
        print("⏹️ Bot stopped")
    except Exception as e:
        print(f"❌ Bot terminated due to error: {e}")


if __name__ == "__main__":
    main()
