import logging
import sys

from pydantic_settings import CliApp

from image_mosaic.errors import MosaicError
from image_mosaic.mosaicker import Mosaicker
from image_mosaic.parameters import MosaicParameters


def main(args: list[str]) -> int:
    params = CliApp.run(MosaicParameters, cli_args=args)
    logging.basicConfig(
        level=logging.DEBUG if params.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # tifffile warns about every non-standard tag it reads
    logging.getLogger("tifffile").setLevel(logging.ERROR)
    try:
        Mosaicker(params).run()
    except MosaicError as e:
        logging.error(f"Mosaic failed, no output written: {e}")
        return 1
    return 0


def cli() -> None:
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
