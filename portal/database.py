from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

Base = declarative_base()

ASSESSMENT_TYPES = ("assignment", "quiz")


def utcnow():
    """Naive UTC timestamp, matching what SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="student")  # instructor, student, admin
    created_at = Column(DateTime, default=utcnow)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Class(Base):
    __tablename__ = "classes"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    code = Column(String, unique=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
    instructor = relationship("User")
    enrollments = relationship("Enrollment", back_populates="class_", cascade="all, delete-orphan")
    assignments = relationship("Assignment", back_populates="class_", cascade="all, delete-orphan")
    quizzes = relationship("Quiz", back_populates="class_", cascade="all, delete-orphan")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("class_id", "student_id", name="uq_enrollment_class_student"),)
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String, default="active")  # active, dropped, completed
    enrolled_at = Column(DateTime, default=utcnow)
    class_ = relationship("Class", back_populates="enrollments")
    student = relationship("User")


class Assignment(Base):
    __tablename__ = "assignments"
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    total_points = Column(Float, nullable=False, default=100.0)
    due_date = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    class_ = relationship("Class", back_populates="assignments")
    submissions = relationship("Submission", back_populates="assignment", cascade="all, delete-orphan")


class Submission(Base):
    """Assignment submission; its grade columns mirror the gradebook entry."""

    __tablename__ = "assignment_submissions"
    id = Column(Integer, primary_key=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text)
    status = Column(String, default="submitted")  # submitted, graded
    grade = Column(Float)
    feedback = Column(Text)
    graded_by = Column(Integer, ForeignKey("users.id"))
    graded_at = Column(DateTime)
    submitted_at = Column(DateTime, default=utcnow)
    late_submission = Column(Boolean, default=False)  # set when graded
    assignment = relationship("Assignment", back_populates="submissions")
    student = relationship("User", foreign_keys=[student_id])


class Quiz(Base):
    __tablename__ = "quizzes"
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    quiz_type = Column(String, default="graded")  # graded, practice
    total_points = Column(Float, nullable=False, default=100.0)
    available_to = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    class_ = relationship("Class", back_populates="quizzes")
    questions = relationship(
        "QuizQuestion",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="QuizQuestion.order_number",
    )
    attempts = relationship("QuizAttempt", back_populates="quiz", cascade="all, delete-orphan")


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"
    id = Column(Integer, primary_key=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    question_type = Column(String, default="multiple_choice")
    question_text = Column(Text, nullable=False)
    points = Column(Float, default=1.0)
    required = Column(Boolean, default=True)
    explanation = Column(Text)
    order_number = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)
    quiz = relationship("Quiz", back_populates="questions")
    options = relationship(
        "QuizOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuizOption.order_number",
    )


class QuizOption(Base):
    __tablename__ = "quiz_options"
    id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("quiz_questions.id", ondelete="CASCADE"), nullable=False)
    option_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, default=False)
    match_text = Column(Text)
    order_number = Column(Integer, default=0)
    question = relationship("QuizQuestion", back_populates="options")


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"
    id = Column(Integer, primary_key=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    total_score = Column(Float)
    status = Column(String, default="in_progress")  # in_progress, graded
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    quiz = relationship("Quiz", back_populates="attempts")


class GradeEntry(Base):
    """One student's recorded score against one assessment (assignment or quiz)."""

    __tablename__ = "gradebook"
    __table_args__ = (
        UniqueConstraint("student_id", "assessment_type", "assessment_id", name="uq_gradebook_student_assessment"),
    )
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assessment_type = Column(String, nullable=False)  # assignment, quiz
    assessment_id = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)
    max_score = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False)
    grade_letter = Column(String, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    student = relationship("User")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path=None, url=None):
    """Returns a SQLAlchemy engine.

    ``url`` (e.g. a PostgreSQL DATABASE_URL) takes precedence over the
    SQLite file path.
    """
    if url is None:
        url = f"sqlite:///{db_path or 'portal.db'}"
    engine = create_engine(url)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_db(engine):
    """Creates all tables in the database."""
    Base.metadata.create_all(engine)


def get_session(engine):
    """Returns a new session."""
    Session = sessionmaker(bind=engine)
    return Session()
