from .source import ExamDataSource, InMemoryExamDataSource
