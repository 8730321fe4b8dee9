import asyncio
import os
import tempfile

from translation_server import MockTranslationServer
from translation_client.exceptions import DocumentTranslationError, TranslatorError
from translation_client.models import DocumentPollingConfig, TranslatorOptions
from translation_client.translation_client import TranslationClient


async def status_changed(status):
    print(f"Document status changed to: {status.status.value}")


async def main():
    auth_key = os.environ.get("TRANSLATOR_AUTH_KEY", "mock-auth-key")
    server = MockTranslationServer(
        auth_key=auth_key, doc_queue_time=2.0, doc_translate_time=3.0
    )
    port = await server.start()
    print(f"Server started on http://127.0.0.1:{port}")

    options = TranslatorOptions(
        server_url=f"http://127.0.0.1:{port}",
        polling=DocumentPollingConfig(min_delay=0.5, default_delay=1.0, timeout=60.0),
    )

    async with TranslationClient(auth_key, options, on_status_change=status_changed) as client:
        try:
            result = await client.translate_text("proton beam", "en", "de")
            print(f"Text translation: {result.text} (from {result.detected_source_lang})")

            with tempfile.TemporaryDirectory() as workdir:
                input_path = os.path.join(workdir, "letter.txt")
                output_path = os.path.join(workdir, "letter-de.txt")
                with open(input_path, "w") as f:
                    f.write("Dear reader, thank you for your patience.")

                status = await client.translate_document(
                    input_path, output_path, "en", "de"
                )
                with open(output_path) as f:
                    print(f"Translated document: {f.read()}")
                print(f"Billed characters: {status.billed_characters}")

            print(await client.get_usage())
        except DocumentTranslationError as e:
            print(f"Document translation failed: {e}")
            if e.handle is not None:
                print(f"Resume later with handle: {e.handle.to_json()}")
        except TranslatorError as e:
            print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
