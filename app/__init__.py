"""Learning Platform Backend Application.

Course video processing and streaming, plus completion certificates.

Modules:
    - core: Configuration, database, Celery, storage, logging, tracing, metrics
    - modules.job: Background job queues and workers
    - modules.transcoding: Quality ladder and FFmpeg
    - modules.video: Video upload, processing, streaming and progress
    - modules.course: Users, courses and enrollments
    - modules.certificate: Certificate issuance and verification
    - modules.notification: In-app notifications and email
"""

__version__ = "0.1.0"
