"""Application modules.

This package contains the feature modules of the learning platform backend:
- job: Named queues, Celery worker tasks and job status
- transcoding: Quality ladder and FFmpeg wrappers
- video: Upload, processing worker, streaming and progress feed
- course: Users, courses and enrollments
- certificate: Certificate issuance and verification
- notification: In-app notifications and email
"""
