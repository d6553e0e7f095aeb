import asyncio
import sys

from settings.config import settings
from storage.s3_client import S3Client, StorageError


async def main(bucket: str) -> None:
	storage = S3Client.from_settings()
	# New buckets are private; objects are only reachable with credentials
	created = await storage.ensure_bucket(bucket)
	if created:
		print(f"Created bucket: {bucket}")
	else:
		print(f"Bucket already exists: {bucket}")
	print(f"Allowed types: {', '.join(settings.ALLOWED_MIME_TYPES)}; max size: {settings.MAX_UPLOAD_BYTES} bytes")


if __name__ == "__main__":
	bucket = sys.argv[1] if len(sys.argv) > 1 else settings.STORAGE_BUCKET
	try:
		asyncio.run(main(bucket))
	except (RuntimeError, StorageError) as e:
		print(f"Storage setup failed: {e}")
		sys.exit(1)
